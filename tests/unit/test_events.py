#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio

import pytest

from owlhub_core.events import ListenerExecutor


@pytest.mark.asyncio
async def test_listeners_run_in_registration_order() -> None:
    calls: list[str] = []
    executor = ListenerExecutor()
    executor.on("build", lambda: calls.append("first"))
    executor.on("build", lambda: calls.append("second"))
    executor.on("build", lambda: calls.append("prepended"), prepend=True)

    await executor.emit("build")

    assert calls == ["prepended", "first", "second"]


@pytest.mark.asyncio
async def test_async_listener_completes_before_next_listener() -> None:
    calls: list[str] = []

    async def slow(value: str) -> None:
        await asyncio.sleep(0.01)
        calls.append(f"slow:{value}")

    executor = ListenerExecutor()
    executor.on("sign", slow)
    executor.on("sign", lambda value: calls.append(f"sync:{value}"))

    await executor.emit("sign", "x")

    assert calls == ["slow:x", "sync:x"]


@pytest.mark.asyncio
async def test_failing_listener_stops_event() -> None:
    calls: list[str] = []

    def fail() -> None:
        raise ValueError("boom")

    executor = ListenerExecutor()
    executor.on("validate", fail)
    executor.on("validate", lambda: calls.append("unreachable"))

    with pytest.raises(ValueError, match="boom"):
        await executor.emit("validate")
    assert calls == []


@pytest.mark.asyncio
async def test_remove_listener() -> None:
    calls: list[str] = []

    def listener() -> None:
        calls.append("called")

    executor = ListenerExecutor()
    executor.on("send", listener)
    executor.remove_listener("send", listener)
    executor.remove_listener("send", listener)
    await executor.emit("send")

    assert calls == []
    assert "send" not in executor


def test_copy_is_independent() -> None:
    def listener() -> None:
        pass

    executor = ListenerExecutor()
    executor.on("build", listener)
    copied = executor.copy()
    copied.remove_listener("build", listener)
    copied.on("success", listener)

    assert executor.listeners("build") == [listener]
    assert executor.listeners("success") == []
    assert copied.listeners("build") == []


def test_remove_all_listeners() -> None:
    executor = ListenerExecutor()
    executor.on("build", print)
    executor.on("sign", print)

    executor.remove_all_listeners("build")
    assert "build" not in executor
    assert "sign" in executor

    executor.remove_all_listeners()
    assert "sign" not in executor


@pytest.mark.asyncio
async def test_emit_unknown_event_is_noop() -> None:
    await ListenerExecutor().emit("nothing", 1, 2)
