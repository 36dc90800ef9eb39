"""Unit tests for the compensating-action stack."""

from src.utils.compensation import CompensationStack


async def test_rollback_runs_in_reverse_order():
    calls = []
    stack = CompensationStack()

    async def step(name):
        calls.append(name)

    stack.push("primeiro", lambda: step("primeiro"))
    stack.push("segundo", lambda: step("segundo"))
    stack.push("terceiro", lambda: step("terceiro"))

    failed = await stack.rollback()

    assert calls == ["terceiro", "segundo", "primeiro"]
    assert failed == []
    assert len(stack) == 0


async def test_failed_action_does_not_stop_the_others():
    calls = []
    stack = CompensationStack()

    async def ok():
        calls.append("ok")

    async def boom():
        raise RuntimeError("falhou")

    stack.push("ok", ok)
    stack.push("boom", boom)

    failed = await stack.rollback()

    assert failed == ["boom"]
    assert calls == ["ok"]


async def test_discard_clears_pending_actions():
    calls = []
    stack = CompensationStack()

    async def step():
        calls.append(1)

    stack.push("passo", step)
    stack.discard()
    await stack.rollback()

    assert calls == []
