"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from .models import TimeEntry, TrackerStats


def summarize_entries(entries: Iterable[TimeEntry]) -> TrackerStats:
    totals: defaultdict[str, int] = defaultdict(int)
    count = 0
    total = 0
    for entry in entries:
        count += 1
        total += entry.duration_seconds
        totals[entry.app_name] += entry.duration_seconds
    return TrackerStats(
        total_entries=count,
        total_duration_seconds=total,
        per_app_duration_seconds=dict(totals),
    )


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def print_stats(self, stats: TrackerStats, limit: int = 10) -> None:
        if not stats.total_entries:
            print("No unsynced activity recorded.")
            return

        print(f"Entries:     {stats.total_entries}")
        print(f"Total time:  {format_duration(stats.total_duration_seconds)}")
        print()
        print("Top applications:")
        for app_name, seconds in top_apps(stats)[:limit]:
            print(f"  {app_name[:30]:<30} {format_duration(seconds)}")

    def print_entries(self, entries: Iterable[TimeEntry]) -> None:
        printed = False
        for entry in entries:
            printed = True
            start = entry.start_time.strftime("%Y-%m-%d %H:%M:%S")
            end = entry.end_time.strftime("%H:%M:%S")
            print(
                f"{start} - {end}  {format_duration(entry.duration_seconds)}  "
                f"{entry.app_name[:16]:<16} {entry.app_title[:60]}"
            )
        if not printed:
            print("No stored entries.")


def top_apps(stats: TrackerStats) -> list[tuple[str, int]]:
    return sorted(
        stats.per_app_duration_seconds.items(), key=lambda item: item[1], reverse=True
    )


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
