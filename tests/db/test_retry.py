import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from devlog_feed.core.errors import StorageFailure
from devlog_feed.core.settings import load_settings
from devlog_feed.db.retry import is_transient, run_with_retry

SETTINGS = load_settings(storage_retry_attempts=3, storage_retry_base_delay_seconds=0.1)


def _locked() -> OperationalError:
    return OperationalError("UPDATE engagement_cache", {}, Exception("database is locked"))


def test_transient_failure_is_retried_then_committed(mocker) -> None:
    session = mocker.MagicMock()
    sleep = mocker.Mock()
    work = mocker.Mock(side_effect=[_locked(), _locked(), "done"])

    assert run_with_retry(session, work, config=SETTINGS, sleep=sleep) == "done"

    assert work.call_count == 3
    assert session.rollback.call_count == 2
    session.commit.assert_called_once()
    assert [c.args[0] for c in sleep.call_args_list] == [pytest.approx(0.1), pytest.approx(0.2)]


def test_exhausted_retries_raise_retryable_failure(mocker) -> None:
    session = mocker.MagicMock()
    work = mocker.Mock(side_effect=_locked())

    with pytest.raises(StorageFailure) as excinfo:
        run_with_retry(session, work, config=SETTINGS, sleep=mocker.Mock())

    assert excinfo.value.retryable is True
    assert work.call_count == 3
    session.commit.assert_not_called()


def test_permanent_failure_is_not_retried(mocker) -> None:
    session = mocker.MagicMock()
    work = mocker.Mock(side_effect=IntegrityError("INSERT", {}, Exception("constraint")))

    with pytest.raises(StorageFailure) as excinfo:
        run_with_retry(session, work, config=SETTINGS, sleep=mocker.Mock())

    assert excinfo.value.retryable is False
    assert work.call_count == 1
    session.rollback.assert_called_once()


def test_application_errors_roll_back_and_propagate(mocker) -> None:
    session = mocker.MagicMock()
    work = mocker.Mock(side_effect=KeyError("boom"))

    with pytest.raises(KeyError):
        run_with_retry(session, work, config=SETTINGS)

    session.rollback.assert_called_once()
    session.commit.assert_not_called()


def test_commit_failure_is_retried(mocker) -> None:
    session = mocker.MagicMock()
    session.commit.side_effect = [_locked(), None]

    assert run_with_retry(session, lambda s: 7, config=SETTINGS, sleep=mocker.Mock()) == 7
    assert session.commit.call_count == 2


def test_is_transient() -> None:
    assert is_transient(_locked())
    assert not is_transient(IntegrityError("INSERT", {}, Exception("constraint")))
    assert not is_transient(ValueError())
