"""Shared fixtures: a scripted stand-in for GuardedExecutor."""

from __future__ import annotations

from collections.abc import Callable, Iterable

import pytest


class FakeExecutor:
    """Answers run() from a table keyed by the full argv.

    Binaries not listed are treated as missing; argv not in the table fail.
    """

    def __init__(
        self,
        binaries: Iterable[str] = (),
        outputs: dict[tuple[str, ...], tuple[str, bool]] | None = None,
        hand_off_status: int = 0,
    ) -> None:
        self.binaries = set(binaries)
        self.outputs = outputs or {}
        self.hand_off_status = hand_off_status
        self.calls: list[tuple[str, ...]] = []
        self.handed_off: list[tuple[str, ...]] = []

    def available(self, command: str) -> bool:
        return command in self.binaries

    def run(
        self, command: str, *args: str, env: dict[str, str] | None = None,
    ) -> tuple[str, bool]:
        self.calls.append((command, *args))
        if command not in self.binaries:
            return "", False
        return self.outputs.get((command, *args), ("", False))

    def hand_off(self, command: str, *args: str) -> int | None:
        self.handed_off.append((command, *args))
        if command not in self.binaries:
            return None
        return self.hand_off_status


@pytest.fixture
def fake_executor() -> Callable[..., FakeExecutor]:
    return FakeExecutor
