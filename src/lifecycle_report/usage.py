"""Usage history folded per package."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from lifecycle_report.models import PackageUsage, UsageRecord


class UsageHistoryIndex:
    """Package name -> last referenced time over all of its components.

    Records are expected to be well-formed already; structural validation
    belongs to the loader that produced them.
    """

    def __init__(self, packages: dict[str, PackageUsage] | None = None) -> None:
        self._packages: dict[str, PackageUsage] = packages or {}

    @classmethod
    def from_records(cls, records: Iterable[UsageRecord]) -> UsageHistoryIndex:
        packages: dict[str, PackageUsage] = {}
        for record in records:
            usage = packages.get(record.package)
            if usage is None:
                packages[record.package] = PackageUsage(
                    package=record.package,
                    last_referenced_time=record.last_referenced_time,
                    components=[record],
                )
                continue
            usage.last_referenced_time = max(
                usage.last_referenced_time, record.last_referenced_time
            )
            usage.components.append(record)
        return cls(packages)

    @property
    def packages(self) -> dict[str, PackageUsage]:
        return self._packages

    def get(self, package: str) -> PackageUsage | None:
        return self._packages.get(package)

    def __contains__(self, package: object) -> bool:
        return package in self._packages

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[PackageUsage]:
        return iter(self._packages.values())
