"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.exceptions import ConfigurationError
from .domain.models import BookingPolicy, BusinessHours, CancellationPolicy


class BusinessHoursConfig(BaseModel):
    """Opening hours and lunch break, in whole hours."""
    start: int = 8
    end: int = 20
    lunch_start: int = 13
    lunch_end: int = 14

    @field_validator("start", "end", "lunch_start", "lunch_end")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessHoursConfig":
        """Ensure the day opens before it closes and lunch sits inside it."""
        if self.end <= self.start:
            raise ValueError("end must be later than start")
        if self.lunch_start < self.lunch_end and not (
            self.start <= self.lunch_start and self.lunch_end <= self.end
        ):
            raise ValueError("lunch break must lie within business hours")
        return self

    def to_domain(self) -> BusinessHours:
        return BusinessHours(
            start=self.start,
            end=self.end,
            lunch_start=self.lunch_start,
            lunch_end=self.lunch_end,
        )


class CancellationConfig(BaseModel):
    """Cancellation lead-time rule."""
    enabled: bool = False
    lead_hours: int = Field(default=1, ge=0)

    def to_domain(self) -> CancellationPolicy:
        return CancellationPolicy(enabled=self.enabled, lead_hours=self.lead_hours)


class ServiceConfig(BaseModel):
    """A bookable service."""
    id: str
    name: str = ""
    duration_minutes: int = 60
    active: bool = True

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    def display_name(self) -> str:
        """Get display name."""
        return self.name or self.id


class AppConfig(BaseModel):
    """Application configuration."""
    business_name: str = "Salon"
    timezone: str = "Europe/Madrid"
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    working_days: List[int] = Field(default_factory=lambda: [2, 3, 4, 5, 6])  # Tuesday to Saturday
    slot_duration_minutes: int = 30
    advance_booking_days: int = Field(default=30, ge=0)
    min_lead_time_minutes: int = Field(default=30, ge=0)
    cancellation: CancellationConfig = Field(default_factory=CancellationConfig)
    max_active_bookings_per_user: int = Field(default=1, ge=0)
    services: List[ServiceConfig] = Field(default_factory=list)
    bookings_file: Optional[Path] = None
    log_level: str = "WARNING"

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        """Ensure the slot grid step is positive."""
        if value <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        return value

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range (0=Sunday) and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"working_days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        """Ensure service ids are unique."""
        seen_ids: set[str] = set()
        for service in value:
            if service.id in seen_ids:
                raise ValueError(f"Duplicate service id detected: {service.id}")
            seen_ids.add(service.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Any field missing from the file keeps its default. A relative
        ``bookings_file`` is resolved against the config file's directory.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping at the root level.")

        try:
            config = cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n{exc}") from exc

        if config.bookings_file is not None and not config.bookings_file.is_absolute():
            config = config.model_copy(
                update={"bookings_file": config_path.parent / config.bookings_file}
            )

        return config

    def find_service(self, service_id: str) -> Optional[ServiceConfig]:
        """Find a service by its id."""
        for service in self.services:
            if service.id == service_id:
                return service
        return None

    def active_services(self) -> List[ServiceConfig]:
        return [service for service in self.services if service.active]

    def get_business_hours(self) -> BusinessHours:
        return self.business_hours.to_domain()

    def get_policy(self) -> BookingPolicy:
        """Build the domain booking policy from this configuration."""
        return BookingPolicy(
            working_days=frozenset(self.working_days),
            slot_duration_minutes=self.slot_duration_minutes,
            advance_booking_days=self.advance_booking_days,
            min_lead_time_minutes=self.min_lead_time_minutes,
            cancellation_enabled=self.cancellation.enabled,
            cancellation_lead_hours=self.cancellation.lead_hours,
            max_active_bookings_per_user=self.max_active_bookings_per_user,
        )


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
