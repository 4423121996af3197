from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field, StringConstraints

from correlator.entity import Count, Entity, Identifier, Tag, utcnow
from correlator.errors import Violation


class Dataset(Entity):
    """A registered data source that correlations are discovered between."""

    table_name: ClassVar[str] = "datasets"
    json_columns: ClassVar[frozenset[str]] = frozenset({"data_schema", "metadata"})
    search_fields: ClassVar[tuple[str, ...]] = ("name", "description")

    name: Annotated[str, StringConstraints(min_length=1, max_length=255)]
    description: Annotated[str, StringConstraints(max_length=5000)] = ""
    data_schema: dict[str, Any] = Field(default_factory=dict)
    type: Literal["structured", "semi-structured", "unstructured"] = "structured"
    source: Annotated[str, StringConstraints(max_length=1000)] = ""
    format: Literal["json", "csv", "parquet", "xml", "avro", "binary"] = "json"
    size: Count = 0
    record_count: Count = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: Literal["active", "archived", "processing", "error"] = "active"
    last_accessed: datetime = Field(default_factory=utcnow)
    tags: list[Tag] = Field(default_factory=list)
    visibility: Literal["private", "public", "shared"] = "private"
    owner_id: Identifier | None = None

    def check_rules(self) -> list[Violation]:
        fields = self.data_schema.get("fields")
        if fields is None:
            return []
        if not isinstance(fields, list):
            return [Violation("data_schema.fields", "schema_fields", "Schema fields must be an array")]

        return [
            Violation(
                f"data_schema.fields.{index}",
                "schema_field",
                "Each schema field must have name and type",
            )
            for index, field in enumerate(fields)
            if not isinstance(field, dict) or not field.get("name") or not field.get("type")
        ]

    def archive(self):
        self.status = "archived"
        return self.touch()

    def activate(self):
        self.status = "active"
        return self.touch()

    def update_stats(self, record_count: int, size: int):
        self.record_count = record_count
        self.size = size
        return self.touch()

    def record_access(self):
        """Bump the access counter kept in metadata."""
        self.last_accessed = utcnow()
        self.metadata = {**self.metadata, "access_count": self.metadata.get("access_count", 0) + 1}
        return self.touch()

    def add_tag(self, tag: str):
        if tag not in self.tags:
            self.tags = [*self.tags, tag]
            self.touch()
        return self

    def remove_tag(self, tag: str):
        self.tags = [t for t in self.tags if t != tag]
        return self.touch()
