"""Identifier canonicalization shared by every read and write path."""

from .normalizer import EntityKind, infer_entity_kind, normalize, normalize_entity

__all__ = ["EntityKind", "infer_entity_kind", "normalize", "normalize_entity"]
