"""Repository modules - Data access layer"""
from .base import TemplateRepository, InstanceRepository, DelegateRepository
from .memory_repo import InMemoryTemplateRepository, InMemoryInstanceRepository, InMemoryDelegateRepository

__all__ = [
    "TemplateRepository",
    "InstanceRepository",
    "DelegateRepository",
    "InMemoryTemplateRepository",
    "InMemoryInstanceRepository",
    "InMemoryDelegateRepository",
]
