"""Integration tests for TransferProcessor.

Tests multi-file upload with per-file isolation, progress reporting, and
full backup, against the fake Google APIs.
"""

import json

import httpx
import pytest

from firestore_transfer.firestore.codec import decode_fields
from firestore_transfer.firestore.config import TransferConfig
from firestore_transfer.firestore.errors import AuthenticationError
from firestore_transfer.firestore.processor import TransferProcessor, TransferProgress
from firestore_transfer.models import DataFile

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def config() -> TransferConfig:
    """Test TransferConfig with the key check off."""
    config = TransferConfig()
    config.validation.check_key_validity = False
    return config


async def _validated_session(processor: TransferProcessor, service_account_dict):
    result = await processor.validate(service_account_dict)
    assert result.valid
    return result.session


# -----------------------------------------------------------------------------
# Test upload_files
# -----------------------------------------------------------------------------


class TestUploadFiles:
    """Tests for TransferProcessor.upload_files."""

    async def test_object_of_objects_ids_round_trip(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        """Keys become ids and _id never reaches the stored fields."""
        files = [
            DataFile(
                filename="users.json",
                content=json.dumps({"x": {"name": "Ann"}, "y": {"name": "Bo"}}),
            )
        ]

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            report = await processor.upload_files(session, files)

        assert report.success is True
        stored = fake_apis.documents("users")
        assert set(stored) == {"x", "y"}
        assert decode_fields(stored["x"]) == {"name": "Ann"}

    async def test_failing_file_does_not_stop_others(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        files = [
            DataFile(filename="good_a.json", content=json.dumps([{"v": 1}, {"v": 2}])),
            DataFile(filename="broken.json", content="{nope"),
            DataFile(filename="empty.json", content="{}"),
            DataFile(filename="good_b.json", content=json.dumps({"only": "one"})),
        ]

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            report = await processor.upload_files(session, files)

        assert report.success is True
        assert [r.collection for r in report.results] == ["good_a", "broken", "empty", "good_b"]
        assert [r.success for r in report.results] == [True, False, False, True]
        assert report.results[1].error == "Invalid JSON format"
        assert report.results[2].error == "Empty JSON object"

        summary = report.summary
        assert summary.total_files == 4
        assert summary.successful_files == 2
        assert summary.failed_files == 2
        assert summary.total_documents_uploaded == 3

        assert len(fake_apis.documents("good_a")) == 2
        assert len(fake_apis.documents("good_b")) == 1

    async def test_fatal_write_isolated_to_its_file(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        fake_apis.commit_failures = [500, 500, 500]
        files = [
            DataFile(filename="first.json", content=json.dumps([{"v": 1}])),
            DataFile(filename="second.json", content=json.dumps([{"v": 2}])),
        ]

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            report = await processor.upload_files(session, files)

        first, second = report.results
        assert first.success is False
        assert first.documents_uploaded == 0
        assert "after 3 attempts" in first.error
        assert second.success is True
        assert report.success is True

    async def test_all_files_failing(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            report = await processor.upload_files(
                session, [DataFile(filename="x.json", content="42")]
            )

        assert report.success is False
        payload = report.to_payload()
        assert payload["errors"][0]["collection"] == "x"
        assert payload["summary"]["failedFiles"] == 1

    async def test_fresh_token_per_call(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        files = [DataFile(filename="a.json", content="[]")]

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            await processor.upload_files(session, files)
            await processor.upload_files(session, files)

        token_requests = [r for r in fake_apis.requests if r.url.host == "oauth2.googleapis.com"]
        # One for validation, one per upload call
        assert len(token_requests) == 3

    async def test_token_failure_raises(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            fake_apis.token_status = 401
            fake_apis.token_body = {"error": "invalid_client"}

            with pytest.raises(AuthenticationError):
                await processor.upload_files(session, [DataFile(filename="a.json", content="[]")])

        assert fake_apis.write_requests == []

    async def test_progress_callback(
        self, fake_apis, config, service_account_dict, recording_sleep
    ) -> None:
        seen = []

        def on_progress(progress: TransferProgress) -> None:
            seen.append((progress.current_file, progress.current_stage, progress.processed_files))

        files = [
            DataFile(filename="a.json", content="[{}]"),
            DataFile(filename="b.json", content="oops"),
        ]

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            processor = TransferProcessor(http, config, sleep=recording_sleep)
            session = await _validated_session(processor, service_account_dict)
            await processor.upload_files(session, files, progress_callback=on_progress)

        assert seen == [
            ("a.json", "parsing", 0),
            ("a.json", "writing", 0),
            ("a.json", "writing", 1),
            ("b.json", "parsing", 1),
            ("b.json", "parsing", 2),
        ]


# -----------------------------------------------------------------------------
# Test backup
# -----------------------------------------------------------------------------


class TestBackup:
    """Tests for TransferProcessor.backup."""

    async def test_reads_every_collection(
        self, fake_apis, config, service_account_key
    ) -> None:
        fake_apis.seed("books", {"b1": {"t": "Dune"}, "b2": {"t": "Emma"}})
        fake_apis.seed("users", {"u1": {"name": "Ann"}})

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            listings = await TransferProcessor(http, config).backup(service_account_key)

        assert [listing.collection for listing in listings] == ["books", "users"]
        assert listings[0].to_payload()["documents"] == [
            {"id": "b1", "t": "Dune"},
            {"id": "b2", "t": "Emma"},
        ]
