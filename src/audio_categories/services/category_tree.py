"""
Category tree model for traversal and projection.

Builds an in-memory view of the two-level category hierarchy from a flat
snapshot of CategoryRecord rows (plus, optionally, audio associations for
counts). The model is a pure projection: input records are never mutated,
and every result is a fresh immutable value.

Records whose parent_id does not resolve are orphans. They appear in flat
listings but never in the tree view, and are reported through orphans().
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from audio_categories.services.dto import AudioAssociation, CategoryRecord, CategoryTreeNode


def _sort_key(record: CategoryRecord):
    return (record.sort_order, record.name.lower(), record.id or 0)


class CategoryTree:
    """
    Indexed snapshot of the category hierarchy.

    The parent index is built in a single pass over the records, so
    construction is O(n) in the number of categories plus associations.

    Args:
        records: Category snapshot
        associations: Audio associations used for audio counts
    """

    def __init__(
        self,
        records: Iterable[CategoryRecord],
        associations: Iterable[AudioAssociation] = (),
    ):
        self._records: Tuple[CategoryRecord, ...] = tuple(records)
        self._by_id: Dict[int, CategoryRecord] = {}
        self._children: Dict[Optional[int], List[CategoryRecord]] = defaultdict(list)
        self._associations: Tuple[AudioAssociation, ...] = tuple(associations)

        for record in self._records:
            self._by_id[record.id] = record
        for record in self._records:
            self._children[record.parent_id].append(record)
        for siblings in self._children.values():
            siblings.sort(key=_sort_key)

        self._audio_by_category: Dict[int, Set[int]] = defaultdict(set)
        for assoc in self._associations:
            if assoc.category_id is not None:
                self._audio_by_category[assoc.category_id].add(assoc.audio_id)
            if assoc.subcategory_id is not None:
                self._audio_by_category[assoc.subcategory_id].add(assoc.audio_id)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, category_id) -> bool:
        return category_id in self._by_id

    @property
    def records(self) -> Tuple[CategoryRecord, ...]:
        return self._records

    @property
    def associations(self) -> Tuple[AudioAssociation, ...]:
        return self._associations

    def get(self, category_id: Optional[int]) -> Optional[CategoryRecord]:
        if category_id is None:
            return None
        return self._by_id.get(category_id)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def children(self, category_id: Optional[int]) -> List[CategoryRecord]:
        """
        Direct children of a category, in sibling order.

        Args:
            category_id: Parent ID, or None for root-level rows

        Returns:
            List of child records (all states)
        """
        return list(self._children.get(category_id, ()))

    def roots(self) -> List[CategoryRecord]:
        """Rows with no parent, in sibling order."""
        return self.children(None)

    def ancestors_of(self, category_id: int) -> List[CategoryRecord]:
        """
        Ancestors of a category, nearest first.

        At depth 2 this holds zero or one entries. The walk stops at a
        dangling parent reference and never loops on corrupted data.
        """
        ancestors = []
        seen = {category_id}
        current = self.get(category_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                break
            parent = self.get(current.parent_id)
            if parent is None:
                break
            ancestors.append(parent)
            seen.add(parent.id)
            current = parent
        return ancestors

    def descendants_of(self, category_id: int) -> List[CategoryRecord]:
        """All descendants of a category, breadth first."""
        result = []
        seen = {category_id}
        queue = [category_id]
        while queue:
            current = queue.pop(0)
            for child in self._children.get(current, ()):
                if child.id in seen:
                    continue
                seen.add(child.id)
                result.append(child)
                queue.append(child.id)
        return result

    def is_descendant(self, candidate_id: int, ancestor_id: int) -> bool:
        """Check whether candidate_id sits below ancestor_id."""
        return any(a.id == ancestor_id for a in self.ancestors_of(candidate_id))

    def orphans(self) -> List[CategoryRecord]:
        """Rows whose parent_id does not resolve to an existing category."""
        return [
            r for r in self._records if r.parent_id is not None and r.parent_id not in self._by_id
        ]

    def siblings_named(
        self, name: str, parent_id: Optional[int], exclude_id: Optional[int] = None
    ) -> List[CategoryRecord]:
        """Rows under parent_id whose name matches case-insensitively."""
        wanted = (name or "").strip().lower()
        return [
            r
            for r in self._children.get(parent_id, ())
            if r.id != exclude_id and r.name.strip().lower() == wanted
        ]

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def audio_ids(self, category_id: int) -> Set[int]:
        """
        Audio records associated with a category.

        Level-1 categories count transitively through their children;
        each audio record is counted once.
        """
        ids = set(self._audio_by_category.get(category_id, ()))
        for child in self.descendants_of(category_id):
            ids |= self._audio_by_category.get(child.id, set())
        return ids

    def audio_count(self, category_id: int) -> int:
        return len(self.audio_ids(category_id))

    def audio_counts(self) -> Dict[int, int]:
        """Audio count for every category in the snapshot."""
        return {r.id: self.audio_count(r.id) for r in self._records}

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def _visible(self, record: CategoryRecord, include_inactive: bool) -> bool:
        return include_inactive or record.is_active

    def _counted(self, record: CategoryRecord, include_count: bool) -> CategoryRecord:
        return record.with_count(self.audio_count(record.id)) if include_count else record

    def to_flat(
        self,
        include_inactive: bool = False,
        include_count: bool = False,
        level: Optional[int] = None,
        parent_id: Optional[int] = None,
    ) -> Tuple[CategoryRecord, ...]:
        """
        Flat listing ordered by level, then sibling order.

        Orphans are included here even though the tree view omits them.

        Args:
            include_inactive: Include inactive rows
            include_count: Populate audio_count on each record
            level: Restrict to one level
            parent_id: Restrict to children of this parent

        Returns:
            Tuple of CategoryRecord
        """
        rows = [
            r
            for r in self._records
            if self._visible(r, include_inactive)
            and (level is None or r.level == level)
            and (parent_id is None or r.parent_id == parent_id)
        ]
        rows.sort(key=lambda r: (r.level,) + _sort_key(r))
        return tuple(self._counted(r, include_count) for r in rows)

    def by_parent(
        self,
        parent_id: Optional[int],
        include_inactive: bool = False,
        include_count: bool = False,
    ) -> Tuple[CategoryRecord, ...]:
        """Direct children of parent_id (None selects root rows)."""
        return tuple(
            self._counted(r, include_count)
            for r in self._children.get(parent_id, ())
            if self._visible(r, include_inactive)
        )

    def to_tree(
        self, include_inactive: bool = False, include_count: bool = False
    ) -> Tuple[CategoryTreeNode, ...]:
        """
        Nested view of root rows and their children.

        An inactive root hides its whole subtree unless include_inactive
        is set.
        """
        return tuple(
            self._build_node(root, include_inactive, include_count, {root.id})
            for root in self._children.get(None, ())
            if self._visible(root, include_inactive)
        )

    def _build_node(
        self,
        record: CategoryRecord,
        include_inactive: bool,
        include_count: bool,
        path: Set[int],
    ) -> CategoryTreeNode:
        children = tuple(
            self._build_node(child, include_inactive, include_count, path | {child.id})
            for child in self._children.get(record.id, ())
            if child.id not in path and self._visible(child, include_inactive)
        )
        count = self.audio_count(record.id) if include_count else None
        return CategoryTreeNode.from_record(record, children=children, audio_count=count)
