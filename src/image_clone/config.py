"""Controller settings loaded from environment variables, a YAML file and CLI flags."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Optional

import yaml
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode

from image_clone.registry import Credentials

DEFAULT_IGNORED_NAMESPACES = frozenset({"kube-system"})


class Settings(BaseSettings):
    """Image clone controller settings.

    All values can be overridden via environment variables with the
    IMAGE_CLONE_ prefix. Example: IMAGE_CLONE_BACKUP_REGISTRY=quay.io/my_backup
    Lists are comma separated: IMAGE_CLONE_IGNORE_NAMESPACES=kube-system,monitoring
    """

    backup_registry: str
    backup_registry_user: str = ""
    backup_registry_password: SecretStr = SecretStr("")
    ignore_namespaces: Annotated[set[str], NoDecode] = Field(
        default_factory=lambda: set(DEFAULT_IGNORED_NAMESPACES)
    )

    leader_election_id: str = ""
    leader_election_namespace: str = ""

    workers: int = Field(default=2, ge=1)
    registry_timeout_seconds: float = Field(default=600, gt=0)  # per reconcile pass
    mirror_retry_seconds: float = Field(default=3.0, ge=0)
    commit_retry_seconds: float = Field(default=1.0, ge=0)
    resync_seconds: int = Field(default=300, gt=0)  # watch timeout before re-listing

    model_config = {"env_prefix": "IMAGE_CLONE_"}

    @field_validator("backup_registry")
    @classmethod
    def _check_backup_registry(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("backup registry is not specified")
        if "/" not in value:
            raise ValueError(
                f"backup registry {value!r} needs a repository, e.g. quay.io/my_favorite_registry"
            )
        return value

    @field_validator("ignore_namespaces", mode="before")
    @classmethod
    def _split_namespaces(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {ns.strip() for ns in value.split(",") if ns.strip()}
        return value

    @model_validator(mode="after")
    def _check_leader_election(self) -> Settings:
        if bool(self.leader_election_id) != bool(self.leader_election_namespace):
            raise ValueError(
                "leader election needs both leader_election_id and leader_election_namespace"
            )
        return self

    @property
    def leader_election_enabled(self) -> bool:
        return bool(self.leader_election_id and self.leader_election_namespace)

    @property
    def credentials(self) -> Credentials:
        """Credentials for the backup registry (anonymous unless user and password are set)."""
        return Credentials(
            username=self.backup_registry_user,
            password=self.backup_registry_password.get_secret_value(),
        )


def load_config_file(path: Path) -> dict[str, Any]:
    """
    Load settings overrides from a YAML file.

    Raises:
        ValueError: If the file does not hold a mapping.
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of settings, got {type(data).__name__}")
    return data


def load_settings(
    overrides: Optional[dict[str, Any]] = None,
    config_file: Optional[Path] = None,
) -> Settings:
    """
    Build Settings with precedence: overrides > config file > environment > defaults.

    Args:
        overrides: Values from the command line; None values are ignored
        config_file: Optional YAML file with settings

    Raises:
        pydantic.ValidationError: If the resulting settings are invalid
    """
    values: dict[str, Any] = {}
    if config_file is not None:
        values.update(load_config_file(config_file))
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
