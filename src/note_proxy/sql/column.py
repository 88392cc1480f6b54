# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Column definitions used by Table.configure()."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

Integer = "INTEGER"
String = "TEXT"
Timestamp = "TIMESTAMP"


@dataclass
class Column:
    name: str
    type_: str
    primary_key: bool = False
    nullable: bool = True
    default: Any = None

    def to_sql(self) -> str:
        parts = [self.name, self.type_]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


class Columns(dict[str, Column]):
    """Ordered column registry for a table."""

    def column(self, name: str, type_: str, **kwargs: Any) -> Column:
        col = Column(name, type_, **kwargs)
        self[name] = col
        return col

    @property
    def primary_key(self) -> Column | None:
        for col in self.values():
            if col.primary_key:
                return col
        return None


__all__ = ["Column", "Columns", "Integer", "String", "Timestamp"]
