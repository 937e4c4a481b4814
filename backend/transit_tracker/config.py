from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    citybus_base_url: str = "https://rt.data.gov.hk/v1/transport/citybus-nwfb"
    company_code: str = "CTB"
    route_number: str = "B8"
    route_direction: str = "outbound"
    use_mock_data: bool = False
    redis_url: str = "redis://localhost:6379/0"
    poll_interval_seconds: int = 5
    smooth_window_seconds: float = 15.0
    virtual_departure_minutes: int = 30
    bus_assign_threshold: float = 0.5
    average_speed_kmh: float = 35.0
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
