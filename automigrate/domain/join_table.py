"""
Join tables for many-to-many relationships.

A `JoinTableHandler` knows the join table's name and which columns point at
each side. It describes its own columns (`model_struct`) so the migrator can
reconcile a join table exactly like a model, and it can link two records
(`add`) with an insert that is a no-op when the link already exists.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from automigrate.domain.models import (
    JoinTableForeignKey,
    JoinTableSource,
    ModelStruct,
    Relationship,
    StructField,
    get_model_struct,
)

if TYPE_CHECKING:  # pragma: no cover
    from automigrate.db import DB


@dataclass(frozen=True)
class JoinTableHandler:
    """Default handler: one join table, foreign keys to both sides' primary keys."""

    table_name: str
    source: JoinTableSource
    destination: JoinTableSource

    @classmethod
    def setup(
        cls,
        relationship: Relationship,
        table_name: str,
        source: Any,
        destination: Any,
    ) -> "JoinTableHandler":
        source_keys = tuple(
            JoinTableForeignKey(db_name=db_name, association_db_name=field_name)
            for db_name, field_name in zip(relationship.foreign_db_names, relationship.foreign_field_names)
        )
        destination_keys = tuple(
            JoinTableForeignKey(db_name=db_name, association_db_name=field_name)
            for db_name, field_name in zip(
                relationship.association_foreign_db_names,
                relationship.association_foreign_field_names,
            )
        )
        return cls(
            table_name=table_name,
            source=JoinTableSource(model_type=source, foreign_keys=source_keys),
            destination=JoinTableSource(model_type=destination, foreign_keys=destination_keys),
        )

    def table(self, db: "DB") -> str:
        return db.table_name_handler(self.table_name)

    def source_foreign_keys(self) -> Tuple[JoinTableForeignKey, ...]:
        return self.source.foreign_keys

    def destination_foreign_keys(self) -> Tuple[JoinTableForeignKey, ...]:
        return self.destination.foreign_keys

    def foreign_key_fields(self) -> List[StructField]:
        """
        Join table columns: copies of both sides' key fields renamed to the
        foreign key names, never auto-incrementing or indexed on their own.
        """
        fields: List[StructField] = []
        for side in (self.source, self.destination):
            side_struct = get_model_struct(side.model_type)
            for foreign_key in side.foreign_keys:
                key_field = side_struct.field_by_name(foreign_key.association_db_name)
                if key_field is None:
                    continue
                fields.append(
                    dataclasses.replace(
                        key_field.with_options(
                            auto_increment=False,
                            primary_key=False,
                            index=False,
                            unique_index=False,
                            unique=False,
                            column=foreign_key.db_name,
                        ),
                        name=foreign_key.db_name,
                        db_name=foreign_key.db_name,
                        is_primary_key=False,
                    )
                )
        return fields

    def model_struct(self) -> ModelStruct:
        fields = tuple(dataclasses.replace(f, is_primary_key=True) for f in self.foreign_key_fields())
        return ModelStruct(
            model_type=type(self),
            model_name=self.table_name,
            struct_fields=fields,
            primary_fields=fields,
        )

    def _condition_map(self, condition_map: Dict[str, Any], side: JoinTableSource, value: Any) -> None:
        value_struct = get_model_struct(value)
        if value_struct.model_type is not side.model_type:
            return
        for foreign_key in side.foreign_keys:
            key_field = value_struct.field_by_name(foreign_key.association_db_name)
            if key_field is not None:
                condition_map[foreign_key.db_name] = getattr(value, key_field.name)

    def add(self, db: "DB", source: Any, destination: Any) -> Optional[BaseException]:
        """
        Link `source` and `destination` in the join table.

        Runs `INSERT ... SELECT ... WHERE NOT EXISTS (...)`, so linking twice
        leaves one row. Returns the error of the insert, or None.
        """
        condition_map: Dict[str, Any] = {}
        self._condition_map(condition_map, self.source, source)
        self._condition_map(condition_map, self.destination, destination)

        scope = db.new_scope(None)
        assign_columns, bind_vars, conditions, values = [], [], [], []
        for key, value in condition_map.items():
            assign_columns.append(scope.quote(key))
            bind_vars.append("?")
            conditions.append(f"{scope.quote(key)} = ?")
            values.append(value)

        quoted_table = scope.quote(self.table(db))
        sql = (
            f"INSERT INTO {quoted_table} ({','.join(assign_columns)}) "
            f"SELECT {','.join(bind_vars)} {scope.dialect().select_from_dummy_table()} "
            f"WHERE NOT EXISTS (SELECT * FROM {quoted_table} WHERE {' AND '.join(conditions)})"
        )
        return db.exec(sql, *values, *values).error


__all__ = ["JoinTableHandler"]
