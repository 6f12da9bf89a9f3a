"""
Path resolver.

Walks already-populated relations of fetched records to collect the records
found at a dotted populate path, so an annotator gets exactly the slice of the
graph it must mutate.
"""

from __future__ import annotations

from lexis_back.runtime.errors import InvalidPathError
from lexis_back.specs.fetch_spec import EntityFetchSpecs, Record, RelationFetchSpec


def _lookup(specs: EntityFetchSpecs, segment: str):
    """Spec for a path segment: by field name, else by populate name."""
    spec = specs.spec(segment)
    if spec is None:
        spec = specs.relation_by_populate(segment)
    return spec


def resolve_at_path(root_specs: EntityFetchSpecs, path: str, root_records: list[Record]) -> list[Record]:
    """
    Records reachable at ``path`` from ``root_records``.

    ``""`` returns ``root_records`` itself. Otherwise every segment must be a
    relation that is populated on every record held at that point. Results
    are flat and grouped by source record; a record reachable several ways
    appears once per way.

    Raises:
        InvalidPathError: If a segment has no spec, is not a relation, or is
            not populated on some record
    """
    if path == "":
        return root_records

    segments = path.split(".")
    specs = root_specs
    current = root_records

    for i, segment in enumerate(segments):
        partial = ".".join(segments[: i + 1])
        spec = _lookup(specs, segment)
        if spec is None:
            raise InvalidPathError(f"Field fetch spec not found for '{partial}'", path)
        if not isinstance(spec, RelationFetchSpec):
            raise InvalidPathError(
                f"Non-relation field encountered at '{partial}' ({spec.type})", path
            )

        found: list[Record] = []
        for record in current:
            related = record.get(spec.populate)
            if spec.relation_type == "to-one":
                if not related:
                    raise InvalidPathError(f"Invalid path: {path} ('{partial}' not populated)", path)
                found.append(related)
            elif spec.relation_type == "to-many":
                # An empty collection is populated; a missing one is not
                if related is None:
                    raise InvalidPathError(f"Invalid path: {path} ('{partial}' not populated)", path)
                found.extend(related)
            else:
                raise InvalidPathError(
                    f"Unknown relation type '{spec.relation_type}' at '{partial}'", path
                )

        current = found
        if i < len(segments) - 1:
            specs = spec.nested_specs()

    return current
