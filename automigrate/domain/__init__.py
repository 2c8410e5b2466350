"""
Domain package for automigrate.

Exports the model description types: column options, field and struct
descriptors, relationships and the join table handler. Keep this package
focused on describing models, free of SQL generation.
"""

from automigrate.domain.join_table import JoinTableHandler
from automigrate.domain.models import (
    Column,
    Field,
    Kind,
    Model,
    ModelStruct,
    ModelStructProvider,
    Relationship,
    StructField,
    get_model_struct,
)

__all__ = [
    "Column",
    "Field",
    "JoinTableHandler",
    "Kind",
    "Model",
    "ModelStruct",
    "ModelStructProvider",
    "Relationship",
    "StructField",
    "get_model_struct",
]
