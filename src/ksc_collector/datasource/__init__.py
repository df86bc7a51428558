from .base import DataSource
from .ksc import KscOpenApiSource, decode_ksc_value
from .static import StaticSource

__all__ = [
    "DataSource",
    "KscOpenApiSource",
    "StaticSource",
    "decode_ksc_value",
]
