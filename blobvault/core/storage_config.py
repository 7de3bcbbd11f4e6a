"""
Storage configuration - backend selection, credentials and retention rules.

The configuration is usually stored as a YAML file (see EXAMPLE_CONFIG) and
named by the STORAGE_CONFIG_FILE environment variable.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator
import yaml

from blobvault.config import Config
from blobvault.core.retention import RetentionRule


class LocalSettings(BaseModel):
    """Settings for the filesystem backend."""
    dir: str = Field(default='./data/blobs', description="Root directory for stored blobs")


class S3Settings(BaseModel):
    """Settings for an S3-compatible object store."""
    endpoint: Optional[str] = Field(default=None, description="Host (with optional scheme) of the S3 endpoint")
    port: Optional[int] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    bucket: str
    region: str = "us-east-1"
    public_url: Optional[str] = Field(default=None, description="Base URL objects are publicly served from")
    use_ssl: bool = True
    path_style: bool = True
    use_accelerate_endpoint: bool = False
    connect_timeout: float = 10
    read_timeout: float = 60

    @property
    def endpoint_url(self) -> Optional[str]:
        """Endpoint URL with the scheme chosen by use_ssl and the optional port"""
        if not self.endpoint:
            return None
        host = self.endpoint.split('://', 1)[-1].rstrip('/')
        protocol = 'https' if self.use_ssl else 'http'
        return f"{protocol}://{host}:{self.port}" if self.port else f"{protocol}://{host}"


class StorageSettings(BaseModel):
    """
    Complete storage configuration.
    Rules are evaluated in the order they are listed.
    """
    backend: Literal['local', 's3'] = 'local'
    local: LocalSettings = Field(default_factory=LocalSettings)
    s3: Optional[S3Settings] = None
    rules: List[RetentionRule] = Field(default_factory=list)
    remove_when_no_owners: bool = False
    remove_untracked_objects: bool = False

    @model_validator(mode='after')
    def validate_backend_section(self) -> "StorageSettings":
        """The selected backend must have its settings section."""
        if self.backend == 's3' and self.s3 is None:
            raise ValueError("backend 's3' requires an 's3' section")
        return self

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "StorageSettings":
        """Parse storage configuration from YAML content."""
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}")
        if data is None:
            return cls()
        return cls(**data)

    def to_yaml(self) -> str:
        """Convert configuration to YAML format."""
        data = self.model_dump(exclude_none=True)
        return yaml.dump(data, sort_keys=False, default_flow_style=False)

    @classmethod
    def from_env(cls) -> "StorageSettings":
        """Build settings from environment variables (no retention rules)."""
        s3 = None
        if Config.S3_BUCKET:
            s3 = S3Settings(
                endpoint=Config.S3_ENDPOINT,
                port=Config.S3_PORT,
                access_key=Config.S3_ACCESS_KEY,
                secret_key=Config.S3_SECRET_KEY,
                bucket=Config.S3_BUCKET,
                region=Config.S3_REGION,
                public_url=Config.S3_PUBLIC_URL,
                use_ssl=Config.S3_USE_SSL,
                path_style=Config.S3_PATH_STYLE,
                use_accelerate_endpoint=Config.S3_USE_ACCELERATE_ENDPOINT,
            )
        return cls(
            backend=Config.STORAGE_BACKEND,
            local=LocalSettings(dir=Config.STORAGE_LOCAL_DIR),
            s3=s3,
            remove_when_no_owners=Config.REMOVE_WHEN_NO_OWNERS,
        )


def load_storage_settings(path: Optional[str] = None) -> StorageSettings:
    """
    Load storage settings from a YAML file, falling back to the environment.

    Args:
        path: YAML file path; defaults to Config.STORAGE_CONFIG_FILE

    Returns:
        Validated StorageSettings

    Raises:
        ValueError: If the configuration is invalid
    """
    path = path or Config.STORAGE_CONFIG_FILE
    if not path:
        return StorageSettings.from_env()
    with open(path, 'r') as f:
        return StorageSettings.from_yaml(f.read())


# Example configuration for documentation:
EXAMPLE_CONFIG = """backend: s3
s3:
  endpoint: "s3.us-east-1.amazonaws.com"
  access_key: "AKIA..."
  secret_key: "..."
  bucket: "blobs"
  public_url: "https://blobs.example.com/"

remove_when_no_owners: true

rules:
  - type: "image/*"
    expiration: "1 month"

  - type: "video/*"
    pubkeys:
      - "266815e0c9210dfa324c6cba3573b14bee49da4209a9456f9484e5106cd408a5"
    expiration: "1 week"

  - type: "*"
    expiration: "1 year"
"""
