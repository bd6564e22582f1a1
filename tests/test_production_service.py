import pytest
from sqlalchemy.exc import OperationalError

from factory_core.app.models import BatchStatus, Block
from factory_core.app.services import (
    InvalidOperationError, NotFoundError, PartialFailure, TransitionNotImplementedError, ValidationError,
    start_batch, record_production, complete_batch, pause_batch, resume_batch, batch_progress
)
from factory_core.app.services import production_service
from factory_core.app.services.production_service import list_batches


@pytest.mark.parametrize("produced,target,expected", [
    (0, 100, 0),
    (33, 100, 33),
    (50, 100, 50),
    (100, 100, 100),
    (150, 100, 100),
    (10, 0, 0),
])
def test_batch_progress(produced, target, expected):
    assert batch_progress(produced, target) == expected


def test_full_batch_lifecycle(db, paver):
    batch = start_batch(db, paver.id, 200, notes="Morning shift")
    assert batch.batch_number == "BATCH-0001"
    assert batch.status == BatchStatus.IN_PROGRESS
    assert batch.block_name == "Paver-A"
    assert batch.produced_qty == 0

    record_production(db, batch.id, 120)
    batch = record_production(db, batch.id, 40, defects=3)
    assert batch.produced_qty == 160
    assert batch.defects == 3

    batch = complete_batch(db, batch.id)
    assert batch.status == BatchStatus.COMPLETE
    assert batch.completed_at is not None
    assert db.get(Block, paver.id).available_qty == 260


def test_complete_twice_credits_stock_once(db, paver):
    batch = start_batch(db, paver.id, 50)
    record_production(db, batch.id, 50)
    complete_batch(db, batch.id)

    with pytest.raises(InvalidOperationError):
        complete_batch(db, batch.id)
    assert db.get(Block, paver.id).available_qty == 150


def test_over_production_is_kept(db, paver):
    batch = start_batch(db, paver.id, 100)
    batch = record_production(db, batch.id, 130)
    assert batch.produced_qty == 130
    assert batch_progress(batch.produced_qty, batch.target_qty) == 100


def test_failed_credit_leaves_batch_in_progress(db, paver, monkeypatch):
    batch = start_batch(db, paver.id, 50)
    record_production(db, batch.id, 40)

    def broken_adjust(*args, **kwargs):
        raise OperationalError("UPDATE blocks", {}, Exception("disk I/O error"))

    monkeypatch.setattr(production_service, "adjust_block_stock", broken_adjust)

    with pytest.raises(PartialFailure) as exc_info:
        complete_batch(db, batch.id)
    assert exc_info.value.failed_step == "credit block stock"
    assert exc_info.value.completed_steps == ["mark batch complete"]

    batch = production_service.get_batch(db, batch.id)
    assert batch.status == BatchStatus.IN_PROGRESS
    assert batch.completed_at is None
    assert db.get(Block, paver.id).available_qty == 100

    monkeypatch.undo()
    assert complete_batch(db, batch.id).status == BatchStatus.COMPLETE
    assert db.get(Block, paver.id).available_qty == 140


def test_completing_empty_batch_leaves_stock(db, paver):
    batch = start_batch(db, paver.id, 10)
    complete_batch(db, batch.id)
    assert db.get(Block, paver.id).available_qty == 100


def test_batch_of_deleted_block_completes_without_credit(db, paver):
    batch = start_batch(db, paver.id, 10)
    record_production(db, batch.id, 10)
    db.delete(db.get(Block, paver.id))
    db.commit()

    batch = complete_batch(db, batch.id)
    assert batch.block_id is None
    assert batch.status == BatchStatus.COMPLETE


def test_cannot_record_on_completed_batch(db, paver):
    batch = start_batch(db, paver.id, 10)
    complete_batch(db, batch.id)
    with pytest.raises(InvalidOperationError):
        record_production(db, batch.id, 5)


def test_paused_batch_cannot_be_left(db, paver):
    batch = start_batch(db, paver.id, 10)
    batch = pause_batch(db, batch.id)
    assert batch.status == BatchStatus.PAUSED

    with pytest.raises(TransitionNotImplementedError):
        resume_batch(db, batch.id)
    with pytest.raises(TransitionNotImplementedError):
        complete_batch(db, batch.id)
    with pytest.raises(InvalidOperationError):
        record_production(db, batch.id, 5)


def test_resume_of_running_batch_is_invalid(db, paver):
    batch = start_batch(db, paver.id, 10)
    with pytest.raises(InvalidOperationError) as exc_info:
        resume_batch(db, batch.id)
    assert not isinstance(exc_info.value, TransitionNotImplementedError)


def test_start_batch_validation(db, paver):
    with pytest.raises(ValidationError):
        start_batch(db, paver.id, 0)
    with pytest.raises(NotFoundError):
        start_batch(db, 999, 10)
    with pytest.raises(ValidationError):
        record_production(db, 1, 0)


def test_failed_start_does_not_burn_a_number(db, paver):
    with pytest.raises(NotFoundError):
        start_batch(db, 999, 10)
    assert start_batch(db, paver.id, 10).batch_number == "BATCH-0001"


def test_list_batches_filters_by_status(db, paver):
    first = start_batch(db, paver.id, 10)
    start_batch(db, paver.id, 20)
    pause_batch(db, first.id)

    assert len(list_batches(db)) == 2
    paused = list_batches(db, BatchStatus.PAUSED)
    assert [b.id for b in paused] == [first.id]
