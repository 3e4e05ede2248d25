from __future__ import annotations

import json
import threading

import pytest

from conftest import build_payload, make_image_bytes
from denteval.controller import EvaluationSession, SessionPhase, SessionRegistry
from denteval.errors import PROCESSING_FAILED_MESSAGE, IncompleteInputError, MalformedResponseError, TransportError
from denteval.pipeline.images import EvaluationImage
from denteval.pipeline.validate import parse_evaluation_response
from denteval.schemas import EvaluationResult


def _result(**kwargs) -> EvaluationResult:
    return parse_evaluation_response(json.dumps(build_payload(**kwargs))).result


class StubClient:
    def __init__(self, outcome: EvaluationResult | Exception) -> None:
        self.outcome = outcome
        self.calls = 0

    def evaluate(self, occlusal, proximal, request_id=None) -> EvaluationResult:
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class BlockingClient:
    """First call blocks until released; later calls return immediately."""

    def __init__(self, first: EvaluationResult, second: EvaluationResult) -> None:
        self._results = [first, second]
        self.first_started = threading.Event()
        self.release_first = threading.Event()
        self._lock = threading.Lock()
        self._count = 0

    def evaluate(self, occlusal, proximal, request_id=None) -> EvaluationResult:
        with self._lock:
            index = self._count
            self._count += 1
        if index == 0:
            self.first_started.set()
            assert self.release_first.wait(timeout=5)
        return self._results[index]


def _ready_session() -> EvaluationSession:
    session = EvaluationSession()
    session.set_image("occlusal", EvaluationImage(data=make_image_bytes()))
    session.set_image("proximal", EvaluationImage(data=make_image_bytes()))
    return session


def test_session_moves_from_empty_to_done() -> None:
    session = EvaluationSession()
    assert session.phase is SessionPhase.EMPTY

    session.set_image("occlusal", EvaluationImage(data=make_image_bytes()))
    assert session.phase is SessionPhase.EMPTY
    session.set_image("proximal", EvaluationImage(data=make_image_bytes()))
    assert session.phase is SessionPhase.READY

    applied = session.analyze(StubClient(_result()))

    assert applied is True
    assert session.phase is SessionPhase.DONE
    snapshot = session.snapshot()
    assert snapshot.report is not None
    assert snapshot.report.total_score == 87
    assert snapshot.report.band_label == "Mükemmel"
    assert snapshot.error is None


def test_analyze_without_both_images_does_not_call_client() -> None:
    session = EvaluationSession()
    session.set_image("occlusal", EvaluationImage(data=make_image_bytes()))
    client = StubClient(_result())

    with pytest.raises(IncompleteInputError):
        session.analyze(client)

    assert client.calls == 0
    assert session.phase is SessionPhase.EMPTY


def test_transport_error_message_is_surfaced_verbatim() -> None:
    session = _ready_session()
    error = TransportError(status_code=503, body="overloaded", message="OpenAI request failed: overloaded")

    session.analyze(StubClient(error))

    assert session.phase is SessionPhase.FAILED
    assert session.error is error
    assert session.snapshot().error == "OpenAI request failed: overloaded"
    assert session.result is None


def test_malformed_response_shows_generic_message() -> None:
    session = _ready_session()

    session.analyze(StubClient(MalformedResponseError("missing criteria ids [7]")))

    assert session.snapshot().error == PROCESSING_FAILED_MESSAGE


def test_unexpected_errors_propagate_and_clear_analyzing() -> None:
    session = _ready_session()

    with pytest.raises(ZeroDivisionError):
        session.analyze(StubClient(ZeroDivisionError()))

    assert session.phase is SessionPhase.READY


def test_superseded_call_result_is_discarded() -> None:
    session = _ready_session()
    first = _result(scores={10: -100}, total_score=0, is_invalid=True)
    second = _result()
    client = BlockingClient(first, second)
    outcomes: dict[str, bool] = {}

    worker = threading.Thread(target=lambda: outcomes.setdefault("first", session.analyze(client)))
    worker.start()
    assert client.first_started.wait(timeout=5)

    outcomes["second"] = session.analyze(client)
    client.release_first.set()
    worker.join(timeout=5)

    assert outcomes == {"first": False, "second": True}
    assert session.result is second
    assert session.phase is SessionPhase.DONE


def test_new_upload_invalidates_in_flight_analysis() -> None:
    session = _ready_session()
    token, _, _ = session.begin()
    assert session.phase is SessionPhase.ANALYZING

    session.set_image("proximal", EvaluationImage(data=make_image_bytes(color="black")))

    assert session.finish(token, result=_result()) is False
    assert session.result is None
    assert session.phase is SessionPhase.READY


def test_reset_clears_images_and_result() -> None:
    session = _ready_session()
    session.analyze(StubClient(_result()))

    session.reset()

    assert session.phase is SessionPhase.EMPTY
    assert session.result is None
    snapshot = session.snapshot()
    assert snapshot.has_occlusal is False
    assert snapshot.has_proximal is False


def test_unknown_view_is_rejected() -> None:
    with pytest.raises(ValueError):
        EvaluationSession().set_image("buccal", EvaluationImage(data=b"x"))


def test_registry_evicts_oldest_sessions() -> None:
    registry = SessionRegistry(max_sessions=2)
    first = registry.create()
    second = registry.create()
    registry.get(first.id)
    third = registry.create()

    assert len(registry) == 2
    assert registry.get(first.id) is first
    assert registry.get(third.id) is third
    with pytest.raises(KeyError):
        registry.get(second.id)


def test_sessions_are_isolated() -> None:
    one = _ready_session()
    two = _ready_session()

    one.analyze(StubClient(_result()))

    assert one.phase is SessionPhase.DONE
    assert two.phase is SessionPhase.READY
    assert two.result is None
