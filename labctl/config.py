"""labctl configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    # Virtualization backend
    backend: str = "libvirt"
    libvirt_uri: str = "qemu:///system"

    # Snapshot restored by `reset`
    baseline_snapshot_name: str = "Lab baseline snapshot"

    # Node attribute defaults when neither the node nor the wildcard sets them
    default_boot_order: int = 99
    default_boot_delay: int = 0

    # Length of one boot delay tick (seconds)
    delay_tick_seconds: float = 1.0

    class Config:
        env_prefix = "LABCTL_"


settings = Settings()
