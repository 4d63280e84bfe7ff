"""Engine configuration threaded into every resolver and supervisor."""

from collections.abc import Mapping
from ipaddress import ip_address

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EngineConfig(BaseModel):
    """Explicit configuration for resolution and tunnel lifecycle.

    Nothing in the engine reads the process environment on its own; callers
    build one of these and pass it down.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", frozen=True)

    profile: str | None = Field(default=None, description="AWS named profile")
    region: str | None = Field(default=None, description="AWS region")

    external_dns_server: str = Field(
        default="8.8.8.8", description="Resolver queried when local DNS is overridden"
    )
    dns_timeout: float = Field(default=2.0, gt=0, le=30.0)

    agent_command: list[str] = Field(
        default_factory=lambda: ["aws"],
        min_length=1,
        description="Command prefix used to launch a forwarding session",
    )
    agent_plugin_name: str = Field(default="session-manager-plugin", min_length=1)
    bastion_marker: str = Field(default="bastion", min_length=1)

    port_wait_timeout: float = Field(default=20.0, gt=0, le=300.0)
    fallback_port_wait_timeout: float = Field(default=10.0, gt=0, le=300.0)
    port_poll_interval: float = Field(default=0.5, gt=0, le=10.0)
    port_connect_timeout: float = Field(default=1.0, gt=0, le=10.0)
    remote_probe_timeout: float = Field(default=5.0, gt=0, le=60.0)
    fallback_retry_delay: float = Field(default=2.0, ge=0, le=60.0)
    stop_grace_timeout: float = Field(default=5.0, ge=0, le=60.0)

    redetect_interval: float = Field(default=15.0, gt=0, le=3600.0)
    tick_interval: float = Field(default=0.2, gt=0, le=10.0)

    command_poll_attempts: int = Field(default=10, ge=1, le=100)
    command_poll_interval: float = Field(default=2.0, ge=0, le=60.0)

    @field_validator("profile", "region")
    @classmethod
    def empty_to_none(cls, v: str | None) -> str | None:
        """Treat blank profile/region as unset."""
        return v or None

    @field_validator("external_dns_server")
    @classmethod
    def validate_dns_server(cls, v: str) -> str:
        """The external resolver is queried by address, not by name."""
        try:
            ip_address(v)
        except ValueError as e:
            raise ValueError(f"external_dns_server must be an IP address: {v}") from e
        return v

    @classmethod
    def from_environment(cls, environ: Mapping[str, str], **overrides: object) -> "EngineConfig":
        """Build a config from an explicitly supplied environment mapping.

        Reads ``AWS_PROFILE`` and ``AWS_DEFAULT_REGION``/``AWS_REGION`` (in that
        order of precedence); keyword overrides win over the mapping.
        """
        values: dict[str, object] = {
            "profile": environ.get("AWS_PROFILE") or None,
            "region": environ.get("AWS_DEFAULT_REGION") or environ.get("AWS_REGION") or None,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def profile_args(self) -> list[str]:
        """CLI arguments selecting the configured profile and region."""
        args: list[str] = []
        if self.profile:
            args += ["--profile", self.profile]
        if self.region:
            args += ["--region", self.region]
        return args
