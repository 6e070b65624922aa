# tests/test_io_utils.py
import pytest
import numpy as np
import pandas as pd
import pyvista as pv
import os
import yaml
from m3d1d import io_utils, constants
from m3d1d.data_structures import FieldDomain
from m3d1d.exceptions import ExportError, RadiusImportError
from m3d1d.visualization import VTKExportSink, read_vtk_field

@pytest.fixture(scope="module") # Use module scope for tmp_path to reduce overhead
def test_output_dir(tmp_path_factory):
    # Create a single temporary directory for all tests in this module
    tdir = tmp_path_factory.mktemp("io_test_data")
    return tdir

@pytest.fixture
def network_domain():
    """Branch 0: dofs 0-1-2, branch 1: dofs 2-3 (shares the junction dof 2)."""
    points = np.array([[0., 0., 0.], [1., 0., 0.], [2., 0., 0.], [2., 1., 0.]])
    return FieldDomain(points, [(0, 1), (1, 2), (2, 3)], {0: [0, 1], 1: [2]})

def _write(path, content):
    with open(path, "w") as f:
        f.write(content)
    return str(path)

# --- Radius import (TXT) ---
def test_load_radius_one_value_per_branch(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "per_branch.txt", "# radius per branch\n0.3\n\n0.1\n")
    radius = io_utils.load_network_radius(filepath, network_domain)
    # Branch 1 is assigned last and owns the junction dof
    assert np.allclose(radius, [0.3, 0.3, 0.1, 0.1])

def test_load_radius_with_branch_ids(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "with_ids.txt", "BEGIN_LIST\n1 0.1\n0 0.3  # main branch\nEND_LIST\n")
    radius = io_utils.load_network_radius(filepath, network_domain)
    assert np.allclose(radius, [0.3, 0.3, 0.3, 0.1])

def test_load_radius_one_value_per_dof(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "per_dof.txt", "0.4\n0.3\n0.2\n0.1\n")
    radius = io_utils.load_network_radius(filepath, network_domain)
    assert np.allclose(radius, [0.4, 0.3, 0.2, 0.1])

def test_load_radius_count_mismatch(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "three_values.txt", "0.4\n0.3\n0.2\n")
    with pytest.raises(RadiusImportError, match="expected 2"):
        io_utils.load_network_radius(filepath, network_domain)

def test_load_radius_malformed_line(test_output_dir, network_domain, caplog):
    filepath = _write(test_output_dir / "malformed.txt", "0.4\nnot_a_number\n")
    with pytest.raises(RadiusImportError):
        io_utils.load_network_radius(filepath, network_domain)
    assert "Malformed line 2" in caplog.text

def test_load_radius_mixed_columns(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "mixed.txt", "0 0.4\n0.3\n")
    with pytest.raises(RadiusImportError, match="mixes"):
        io_utils.load_network_radius(filepath, network_domain)

def test_load_radius_unknown_branch(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "unknown_branch.txt", "0 0.4\n7 0.3\n")
    with pytest.raises(RadiusImportError, match="branch 7"):
        io_utils.load_network_radius(filepath, network_domain)

def test_load_radius_unassigned_dofs(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "partial.txt", "1 0.4\n")
    with pytest.raises(RadiusImportError, match="without a value"):
        io_utils.load_network_radius(filepath, network_domain)

def test_load_radius_non_positive(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "negative.txt", "0.3\n-0.1\n")
    with pytest.raises(RadiusImportError, match="non-positive"):
        io_utils.load_network_radius(filepath, network_domain)

def test_load_radius_empty_file(test_output_dir, network_domain):
    filepath = _write(test_output_dir / "empty.txt", "# nothing here\n")
    with pytest.raises(RadiusImportError, match="No radius values"):
        io_utils.load_network_radius(filepath, network_domain)

def test_load_radius_non_existent(network_domain, caplog):
    with pytest.raises(IOError):
        io_utils.load_network_radius("non_existent_radius.txt", network_domain)
    assert "Impossible to read from file" in caplog.text

# --- Radius import (VTK) ---
def test_load_radius_from_vtp(test_output_dir, network_domain):
    filepath = test_output_dir / "radius_profile.vtp"
    poly = network_domain.to_polydata()
    poly.point_data['radius'] = np.array([0.5, 0.4, 0.3, 0.2])
    poly.save(str(filepath))

    radius = io_utils.load_network_radius(str(filepath), network_domain)
    assert np.allclose(radius, [0.5, 0.4, 0.3, 0.2])

def test_load_radius_from_vtp_without_radius(test_output_dir, network_domain):
    filepath = test_output_dir / "no_radius.vtp"
    network_domain.to_polydata().save(str(filepath))
    with pytest.raises(RadiusImportError, match="does not contain 'radius'"):
        io_utils.load_network_radius(str(filepath), network_domain)

def test_load_radius_from_vtp_wrong_size(test_output_dir, network_domain):
    filepath = test_output_dir / "short_radius.vtp"
    poly = pv.PolyData(np.array([[0., 0., 0.], [1., 0., 0.]]), lines=np.array([2, 0, 1]))
    poly.point_data['radius'] = np.array([0.5, 0.4])
    poly.save(str(filepath))
    with pytest.raises(RadiusImportError, match="4 dofs"):
        io_utils.load_network_radius(str(filepath), network_domain)

# --- Vessel and tissue domains ---
def test_load_vessel_network_txt(test_output_dir):
    content = (
        "# x y z branch\n"
        "0 0 0 0\n"
        "1 0 0 0\n"
        "2 0 0 0\n"
        "2 1 0 1\n"
        "2 2 0 1\n"
    )
    domain = io_utils.load_vessel_domain(_write(test_output_dir / "network.txt", content))
    assert domain.degree_of_freedom_count() == 5
    assert domain.lines.tolist() == [[0, 1], [1, 2], [3, 4]]
    assert domain.region_ids() == [0, 1]
    assert domain.dofs_on_region(1).tolist() == [3, 4]

def test_load_vessel_network_txt_without_branch_column(test_output_dir):
    domain = io_utils.load_vessel_network_txt(_write(test_output_dir / "single.txt", "0 0 0\n0 0 1\n0 0 2\n"))
    assert domain.region_ids() == [0]
    assert len(domain.lines) == 2

def test_load_vessel_network_txt_trailing_comments(test_output_dir):
    content = "0 0 0 # inlet\n1 0 0\n2 0 0 # outlet\n"
    domain = io_utils.load_vessel_network_txt(_write(test_output_dir / "commented.txt", content))
    assert domain.degree_of_freedom_count() == 3
    assert domain.lines.tolist() == [[0, 1], [1, 2]]

def test_load_vessel_network_txt_malformed(test_output_dir):
    with pytest.raises(ValueError):
        io_utils.load_vessel_network_txt(_write(test_output_dir / "bad_network.txt", "0 0\n"))

def test_load_vessel_domain_vtp_roundtrip(test_output_dir, network_domain):
    filepath = test_output_dir / "network.vtp"
    network_domain.to_polydata().save(str(filepath))
    domain = io_utils.load_vessel_domain(str(filepath))
    assert domain.degree_of_freedom_count() == 4
    assert domain.lines.tolist() == network_domain.lines.tolist()
    assert domain.region_ids() == [0, 1]

def test_load_vessel_domain_non_existent():
    with pytest.raises(FileNotFoundError):
        io_utils.load_vessel_domain("non_existent_network.vtp")

def test_load_tissue_domain_from_config():
    config = {"tissue_grid": {"shape": [2, 3, 4], "spacing": [1.0, 1.0, 1.0], "origin": [0.0, 0.0, 0.0]}}
    domain = io_utils.load_tissue_domain(config)
    assert domain.degree_of_freedom_count() == 24

# --- Export sink ---
def test_export_sink_writes_vtk_fields(tmp_path, network_domain):
    sink = VTKExportSink(str(tmp_path / "nested" / "out"))
    path = sink.write(network_domain, {"R": [1.0, 2.0, 3.0, 4.0], "Q": np.zeros(4)}, "fields.vtk")
    assert os.path.exists(path)
    assert np.allclose(read_vtk_field(path, "R"), [1.0, 2.0, 3.0, 4.0])
    assert np.allclose(read_vtk_field(path, "Q"), 0.0)
    with pytest.raises(KeyError):
        read_vtk_field(path, "kv")

def test_export_sink_rejects_mismatched_field(tmp_path, network_domain):
    sink = VTKExportSink(str(tmp_path))
    with pytest.raises(ExportError):
        sink.write(network_domain, {"R": [1.0, 2.0]}, "bad.vtk")

def test_export_sink_write_table(tmp_path, network_domain):
    sink = VTKExportSink(str(tmp_path))
    path = sink.write_table(network_domain, {"R": [0.1, 0.2, 0.3, 0.4]}, constants.PARAMETER_TABLE_FILENAME)
    df = pd.read_csv(path)
    assert list(df.columns) == ['dof', 'x', 'y', 'z', 'R']
    assert np.allclose(df['R'], [0.1, 0.2, 0.3, 0.4])

# --- Simulation Parameters Save Test ---
def test_save_simulation_parameters(test_output_dir):
    filepath = test_output_dir / "sim_params_test.yaml"
    test_config = {"parameters": {"TEST_PARAM": True, "Kt": 1.0}, "paths": {"output_dir": "out"}}

    io_utils.save_simulation_parameters(test_config, str(filepath))
    assert os.path.exists(filepath)

    with open(filepath, 'r') as f:
        loaded_params = yaml.safe_load(f)

    assert loaded_params == test_config
