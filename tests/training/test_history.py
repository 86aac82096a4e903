import pytest
from pydantic import ValidationError

from mlstudio_engine.training import History, TrainingProgress


def _progress(epoch, loss=1.0, **kwargs):
    return TrainingProgress(epoch=epoch, loss=loss, **kwargs)


def test_history_appends_in_epoch_order():
    history = History()
    history.append(_progress(1, 0.5))
    history.append(_progress(2, 0.25))

    assert len(history) == 2
    assert history.last.loss == 0.25
    assert history.series("loss") == [0.5, 0.25]
    assert [e.epoch for e in history] == [1, 2]


def test_history_rejects_gaps_and_repeats():
    history = History([_progress(1)])
    with pytest.raises(ValueError):
        history.append(_progress(3))
    with pytest.raises(ValueError):
        history.append(_progress(1))


def test_progress_is_immutable_and_epoch_positive():
    entry = _progress(1)
    with pytest.raises(ValidationError):
        entry.loss = 0.0
    with pytest.raises(ValidationError):
        _progress(0)


def test_entries_snapshot_does_not_change():
    history = History([_progress(1)])
    snapshot = history.entries
    history.append(_progress(2))
    assert len(snapshot) == 1


def test_records_accept_short_validation_keys():
    history = History.from_records(
        [{"epoch": 1, "loss": 0.3, "val_loss": 0.4}, {"epoch": 2, "loss": 0.2}]
    )
    assert history[0].validation_loss == 0.4
    assert history.to_records()[1]["validation_loss"] is None
    assert History.from_records(history.to_records()).series("loss") == [0.3, 0.2]
