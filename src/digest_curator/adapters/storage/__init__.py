"""Storage adapters."""

from digest_curator.adapters.storage.yaml_repository import YAMLCurationRepository

__all__ = ["YAMLCurationRepository"]
