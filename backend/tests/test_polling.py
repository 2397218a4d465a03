import pytest

from services.errors import MaterializationTimeoutError, ProviderError, ProviderTimeoutError
from services.polling import poll_until


class Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def answers(*values):
    remaining = list(values)

    async def fetch():
        value = remaining.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    return fetch


@pytest.mark.anyio
async def test_returns_first_ready_value_with_fixed_interval() -> None:
    sleep = Sleeps()

    result = await poll_until(answers(None, None, "done"), interval=2.5, max_attempts=5, describe="job", sleep=sleep)

    assert result == "done"
    assert sleep.calls == [2.5, 2.5]


@pytest.mark.anyio
async def test_times_out_without_trailing_sleep() -> None:
    sleep = Sleeps()

    with pytest.raises(ProviderTimeoutError, match="job timed out after 3 attempts"):
        await poll_until(answers(None, None, None), interval=1, max_attempts=3, describe="job", sleep=sleep)

    assert len(sleep.calls) == 2


@pytest.mark.anyio
async def test_custom_timeout_error() -> None:
    with pytest.raises(MaterializationTimeoutError):
        await poll_until(
            answers(None),
            interval=0,
            max_attempts=1,
            describe="render",
            timeout_error=MaterializationTimeoutError,
            sleep=Sleeps(),
        )


@pytest.mark.anyio
async def test_fetch_errors_abort_immediately() -> None:
    sleep = Sleeps()

    with pytest.raises(ProviderError, match="rejected"):
        await poll_until(answers(None, ProviderError("rejected"), "late"), interval=1, max_attempts=5,
                         describe="job", sleep=sleep)

    assert sleep.calls == [1]


@pytest.mark.anyio
async def test_falsy_values_other_than_none_count_as_ready() -> None:
    assert await poll_until(answers(0), interval=1, max_attempts=1, describe="job", sleep=Sleeps()) == 0


@pytest.mark.anyio
async def test_rejects_non_positive_attempts() -> None:
    with pytest.raises(ValueError):
        await poll_until(answers("x"), interval=1, max_attempts=0, describe="job")
