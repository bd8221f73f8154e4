from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    database_url: str = Field(alias="DATABASE_URL")

    auth_secret: str = Field(alias="AUTH_SECRET")
    auth_secret_previous: str | None = Field(default=None, alias="AUTH_SECRET_PREVIOUS")
    auth_algorithm: str = Field(default="HS256", alias="AUTH_ALGORITHM")

    razorpay_key_secret: str | None = Field(default=None, alias="RAZORPAY_KEY_SECRET")

    porter_base_url: str = Field(default="https://pfe-apigw-uat.porter.in", alias="PORTER_BASE_URL")
    porter_api_key: str | None = Field(default=None, alias="PORTER_API_KEY")
    borzo_base_url: str = Field(
        default="https://robotapitest-in.borzodelivery.com/api/business/1.6",
        alias="BORZO_BASE_URL",
    )
    borzo_api_key: str | None = Field(default=None, alias="BORZO_API_KEY")
    borzo_vehicle_type_id: int = Field(default=8, alias="BORZO_VEHICLE_TYPE_ID")
    courier_timeout_seconds: float = Field(default=15.0, alias="COURIER_TIMEOUT_SECONDS")

    google_maps_api_key: str | None = Field(default=None, alias="GOOGLE_MAPS_API_KEY")

    whatsapp_base_url: str = Field(
        default="https://graph.facebook.com/v22.0/811413942060929",
        alias="WHATSAPP_BASE_URL",
    )
    whatsapp_api_key: str | None = Field(default=None, alias="WHATSAPP_API_KEY")
    whatsapp_language: str = Field(default="en", alias="WHATSAPP_LANGUAGE")
    notification_timeout_seconds: float = Field(default=10.0, alias="NOTIFICATION_TIMEOUT_SECONDS")
    owner_notify_phones: str | None = Field(default=None, alias="OWNER_NOTIFY_PHONES")
    support_phone: str = Field(default="9867777860", alias="SUPPORT_PHONE")

    # Pickup point handed to the couriers
    store_name: str = Field(default="Makhmali The Fresh Meat Store", alias="STORE_NAME")
    store_apartment: str = Field(default="New Makhmali", alias="STORE_APARTMENT")
    store_address: str = Field(default="Shop no.1, Mutton Chicken Centre", alias="STORE_ADDRESS")
    store_address2: str = Field(
        default="Lal Bahadur Shastri Marg, Dhobi Ali, Charai, Thane West",
        alias="STORE_ADDRESS2",
    )
    store_landmark: str = Field(default="opp. makhmali Talao", alias="STORE_LANDMARK")
    store_city: str = Field(default="Thane", alias="STORE_CITY")
    store_state: str = Field(default="Maharashtra", alias="STORE_STATE")
    store_pincode: str = Field(default="400601", alias="STORE_PINCODE")
    store_latitude: float = Field(default=19.198890, alias="STORE_LATITUDE")
    store_longitude: float = Field(default=72.972017, alias="STORE_LONGITUDE")
    store_contact_name: str = Field(default="Shoaib Q", alias="STORE_CONTACT_NAME")
    store_contact_phone: str = Field(default="919867777860", alias="STORE_CONTACT_PHONE")

    default_delivery_fee_cents: int = Field(default=20000, alias="DEFAULT_DELIVERY_FEE_CENTS")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def DATABASE_URL(self) -> str:
        return self.database_url

    @property
    def AUTH_SECRETS_LIST(self) -> list[str]:
        secrets = [self.auth_secret]
        if self.auth_secret_previous and self.auth_secret_previous not in secrets:
            secrets.append(self.auth_secret_previous)
        return secrets

    @property
    def OWNER_NOTIFY_PHONES_LIST(self) -> list[str]:
        if not self.owner_notify_phones:
            return []
        phones: list[str] = []
        for raw in self.owner_notify_phones.split(","):
            phone = raw.strip()
            if phone and phone not in phones:
                phones.append(phone)
        return phones

    @field_validator("auth_secret")
    @classmethod
    def validate_auth_secret(cls, value: str) -> str:
        if not value or value == "change-me" or len(value) < 32:
            raise ValueError("AUTH_SECRET must be set and at least 32 chars long")
        return value

    @field_validator("auth_secret_previous")
    @classmethod
    def validate_auth_secret_previous(cls, value: str | None) -> str | None:
        if value is None:
            return value
        if value == "change-me" or len(value) < 32:
            raise ValueError("AUTH_SECRET_PREVIOUS must be at least 32 chars long")
        return value

    @field_validator("default_delivery_fee_cents")
    @classmethod
    def validate_default_fee(cls, value: int) -> int:
        if value < 0:
            raise ValueError("DEFAULT_DELIVERY_FEE_CENTS cannot be negative")
        return value


settings = Settings()

_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
