"""Dialect capabilities model."""

from pydantic import BaseModel, Field


class DialectCapabilities(BaseModel):
    """Flags indicating what a database family can render or expose."""

    schemas: bool = Field(
        default=True,
        description="Objects live in named schemas/databases",
    )
    views: bool = Field(default=True, description="Dialect supports views")
    stored_procedures: bool = Field(
        default=False,
        description="Dialect supports stored procedures",
    )
    functions: bool = Field(
        default=False,
        description="Dialect supports user-defined SQL functions",
    )
    triggers: bool = Field(default=False, description="Dialect supports triggers")
    comments: bool = Field(
        default=False,
        description="Dialect supports table/column comments",
    )
    auto_increment: bool = Field(
        default=False,
        description="Table metadata exposes AUTO_INCREMENT and row format",
    )
    native_table_source: bool = Field(
        default=False,
        description="Server can return CREATE TABLE text for a table",
    )
    multi_row_insert: bool = Field(
        default=True,
        description="INSERT accepts several VALUES tuples",
    )
    fulltext_indexes: bool = Field(
        default=False,
        description="Dialect supports FULLTEXT indexes",
    )
    alter_column: bool = Field(
        default=True,
        description="Column type/nullability can be altered in place",
    )
    column_key_roles: bool = Field(
        default=True,
        description="Column metadata reports unique/index key roles directly",
    )

    def get_supported_features(self) -> list[str]:
        """Get list of supported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is True
        ]

    def get_unsupported_features(self) -> list[str]:
        """Get list of unsupported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is False
        ]
