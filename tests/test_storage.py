"""Tests for the storage layer."""

from unittest.mock import MagicMock

import pandas as pd
import pytest

from greedy_match.storage import STORAGE_REGISTRY, JobInfo, StorageManager, create_storage_manager
from greedy_match.storage.local_adapter import LocalStorageAdapter


class TestLocalStorage:
    def test_generated_job_id(self, tmp_path):
        """A fresh job gets a prefixed id and its own directory."""
        manager = create_storage_manager(str(tmp_path))
        job = manager.get_job()

        assert job.job_id.startswith("job-greedy-match-")
        assert (tmp_path / job.job_id).is_dir()

    def test_file_url(self, tmp_path):
        manager = create_storage_manager(f"file://{tmp_path}", job_id="job-1")

        assert manager.full_path("x.json") == str(tmp_path / "job-1" / "x.json")

    def test_round_trip_formats(self, tmp_path):
        """JSON, YAML, CSV and parquet written by the adapter read back equal."""
        manager = create_storage_manager(str(tmp_path), job_id="job-rt")
        df = pd.DataFrame({"subject_id": ["S1", "S2"], "control_score": [0.1, 0.2]})

        manager.write_json("a.json", {"n": 1})
        manager.write_yaml("b.yaml", {"MATCHING": {"opt": "close"}})
        manager.write_table("c.csv", df, "csv")
        manager.write_table("nested/d.parquet", df, "parquet")

        assert manager.read_json("a.json") == {"n": 1}
        assert manager.read_yaml("b.yaml") == {"MATCHING": {"opt": "close"}}
        pd.testing.assert_frame_equal(manager.read_csv("c.csv"), df)
        pd.testing.assert_frame_equal(manager.read_parquet("nested/d.parquet"), df)
        assert manager.exists("nested/d.parquet")
        assert not manager.exists("missing.csv")

    def test_write_table_rejects_unknown_format(self, tmp_path):
        manager = create_storage_manager(str(tmp_path), job_id="job-x")

        with pytest.raises(ValueError, match="Unsupported table format"):
            manager.write_table("t.xlsx", pd.DataFrame(), "xlsx")

    def test_unconnected_adapter(self):
        adapter = LocalStorageAdapter()

        assert not adapter.validate_connection()
        with pytest.raises(ConnectionError, match="not connected"):
            adapter.full_path("x")

    def test_connected_adapter(self, tmp_path):
        adapter = LocalStorageAdapter()

        assert adapter.connect({"storage_url": str(tmp_path), "job_id": "job-v"})
        assert adapter.validate_connection()
        assert adapter.get_job() == JobInfo(job_id="job-v", storage_url=str(tmp_path))

    def test_job_info_reopens_store(self, tmp_path):
        """JobInfo.get_store() points at the same job directory."""
        manager = create_storage_manager(str(tmp_path), job_id="job-reopen")
        manager.write_json("m.json", {"ok": True})

        store = JobInfo(job_id="job-reopen", storage_url=str(tmp_path)).get_store()

        assert store.read_json("m.json") == {"ok": True}

    def test_reopen_missing_job_creates_nothing(self, tmp_path):
        """Reopening a job that does not exist fails instead of creating it."""
        with pytest.raises(FileNotFoundError, match="Job directory not found"):
            JobInfo(job_id="job-ghost", storage_url=str(tmp_path)).get_store()

        assert not (tmp_path / "job-ghost").exists()

    def test_connect_without_create(self, tmp_path):
        adapter = LocalStorageAdapter()

        with pytest.raises(FileNotFoundError):
            adapter.connect({"storage_url": str(tmp_path), "job_id": "job-none", "create": False})

        assert list(tmp_path.iterdir()) == []


class TestStorageManager:
    def test_local_adapter_registered(self):
        assert "local" in STORAGE_REGISTRY

    def test_unknown_storage_type(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown storage"):
            create_storage_manager(str(tmp_path), storage_type="s3")

    def test_injected_adapter(self):
        """The manager delegates to whatever adapter it is given."""
        adapter = MagicMock()
        adapter.connect.return_value = True
        manager = StorageManager({"storage_url": "unused"}, adapter)

        manager.write_json("x.json", {"a": 1})

        adapter.write_json.assert_called_once_with("x.json", {"a": 1})
        assert manager.get_current_config() == {"storage_url": "unused"}

    def test_failed_connect(self):
        adapter = MagicMock()
        adapter.connect.return_value = False

        with pytest.raises(ConnectionError, match="Failed to connect"):
            StorageManager({}, adapter)
