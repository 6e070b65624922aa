# tests/test_main.py
import glob
import logging
import os

import pandas as pd
import pytest
import yaml

import main

@pytest.fixture(autouse=True)
def reset_logging():
    yield
    # main.setup_logging installs a FileHandler in tmp_path; release it
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) in (logging.FileHandler, logging.StreamHandler):
            root.removeHandler(handler)
            handler.close()

@pytest.fixture
def run_config(tmp_path):
    network = tmp_path / "network.txt"
    network.write_text("0 0 0 0\n0.5 0 0 0\n1 0 0 0\n1 0.5 0 1\n1 1 0 1\n")
    config = {
        "paths": {"output_dir": str(tmp_path / "out"), "vessel_network": str(network)},
        "simulation": {"log_level": "INFO"},
        "tissue_grid": {"shape": [3, 3, 3], "spacing": [0.5, 0.5, 0.5], "origin": [0.0, 0.0, 0.0]},
        "parameters": {
            "IMPORT_RADIUS": False, "TEST_PARAM": True, "EXPORT_PARAM": False,
            "RADIUS": 0.05, "Kt": 1.0, "Q": 0.2, "Kv": 4.0,
        },
    }
    return tmp_path, config

def _write_config(tmp_path, config):
    path = tmp_path / "config.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)
    return str(path)

def test_main_writes_parameter_table(run_config, capsys):
    tmp_path, config = run_config
    assert main.main(["--config", _write_config(tmp_path, config)]) == 0

    assert "--- PHYSICAL PARAMS ------" in capsys.readouterr().out
    tables = glob.glob(os.path.join(tmp_path, "out", "*_parameters", "parameters.csv"))
    assert len(tables) == 1
    df = pd.read_csv(tables[0])
    assert len(df) == 5
    assert (df["Q"] == 0.2).all()
    assert (df["kv"] == 4.0).all()
    assert glob.glob(os.path.join(tmp_path, "out", "*_parameters", "config_used.yaml"))

def test_main_output_dir_override(run_config):
    tmp_path, config = run_config
    override = tmp_path / "override"
    assert main.main(["--config", _write_config(tmp_path, config), "--output_dir", str(override)]) == 0
    assert glob.glob(os.path.join(override, "*_parameters", "parameters.log"))

def test_main_fails_on_forbidden_combination(run_config):
    tmp_path, config = run_config
    config["parameters"]["IMPORT_RADIUS"] = True
    assert main.main(["--config", _write_config(tmp_path, config)]) == 1

def test_main_fails_without_vessel_network(run_config):
    tmp_path, config = run_config
    del config["paths"]["vessel_network"]
    assert main.main(["--config", _write_config(tmp_path, config)]) == 1

def test_main_missing_config(tmp_path):
    assert main.main(["--config", str(tmp_path / "missing.yaml")]) == 1

def test_main_create_default_config(tmp_path):
    path = tmp_path / "default.yaml"
    assert main.main(["--config", str(path), "--create-default-config"]) == 0
    assert os.path.exists(path)

def test_default_config_runs_with_sample_network(tmp_path):
    path = tmp_path / "default.yaml"
    assert main.main(["--config", str(path), "--create-default-config"]) == 0
    with open(path) as f:
        config = yaml.safe_load(f)
    # The default network path is relative to the project root
    project_root = os.path.dirname(os.path.abspath(main.__file__))
    network = os.path.join(project_root, config["paths"]["vessel_network"])
    assert os.path.exists(network)
    config["paths"]["vessel_network"] = network
    config["paths"]["output_dir"] = str(tmp_path / "out")
    assert main.main(["--config", _write_config(tmp_path, config)]) == 0
