"""Shared fixtures for end-to-end tests."""

import pandas as pd
import pytest
import yaml


def write_config(path, subjects_path, controls_path, matching=None, output=None, **table_overrides):
    """Write a complete YAML config next to the test tables and return its path."""
    config = {
        "DATA": {
            "SUBJECTS": {"path": str(subjects_path), "id_column": "subject", "score_column": "pscore"},
            "CONTROLS": {"path": str(controls_path), "id_column": "control", "score_column": "pscore"},
        },
        "MATCHING": {"match_ratio": 1, "score_diff": 0.05, "opt": "close", "seed": 11},
        "OUTPUT": {"format": "csv"},
    }
    config["MATCHING"].update(matching or {})
    config["OUTPUT"].update(output or {})
    for table, fields in table_overrides.items():
        config["DATA"][table.upper()].update(fields)

    config_path = path / "config.yaml"
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)
    return config_path


@pytest.fixture
def tables(tmp_path):
    """Subject and control CSVs with one subject that cannot be matched."""
    subjects = pd.DataFrame({"subject": ["S1", "S2", "S3", "S4"], "pscore": [0.10, 0.11, 0.50, 0.95]})
    controls = pd.DataFrame({"control": ["C1", "C2", "C3", "C4"], "pscore": [0.10, 0.105, 0.52, 0.30]})

    subjects_path = tmp_path / "subjects.csv"
    controls_path = tmp_path / "controls.csv"
    subjects.to_csv(subjects_path, index=False)
    controls.to_csv(controls_path, index=False)
    return subjects_path, controls_path


@pytest.fixture
def config_path(tmp_path, tables):
    """Valid configuration pointing at the ``tables`` fixture."""
    return write_config(tmp_path, *tables)
