"""
Tests for the per-bond energy pipeline, using an in-process evaluator.
"""

import io
import math
import os

import pytest
from Bio.PDB import PDBParser

from conftest import ASP_15, GLY_12, pdb_from_atoms
from hbenergy.errors import EvaluatorError, ScratchIOError
from hbenergy.hbonds import create_hbond, parse_hbond_line
from hbenergy.pipeline import EnergyOptions, calc_bond_energy, calc_energies, iter_energies, scratch_files
from hbenergy.fragments import Linkage
from hbenergy.structure import Structure


class FakeEvaluator:
  """Records what it was given and returns a fixed energy."""

  def __init__(self, energy=-1.5, fail_on=()):
    self.energy = energy
    self.fail_on = set(fail_on)
    self.calls = []

  def __call__(self, pdb_file, control_file, output_file):
    written = PDBParser(QUIET=True).get_structure("fragment", str(pdb_file))
    control = control_file.read_text() if control_file is not None else None
    self.calls.append(
      {
        "pdb_file": pdb_file,
        "control_file": control_file,
        "output_file": output_file,
        "chains": [chain.id for chain in written[0]],
        "n_atoms": len(list(written.get_atoms())),
        "control": control,
      }
    )
    if len(self.calls) in self.fail_on:
      raise EvaluatorError("ecalc exited with status 1")
    return self.energy


def _pid_files(directory):
  pid = str(os.getpid())
  return [p for p in directory.iterdir() if pid in p.name]


def test_energy_options_validation():
  with pytest.raises(ValueError):
    EnergyOptions(mode="minimise")
  with pytest.raises(ValueError):
    EnergyOptions(cap_style="amber")
  with pytest.raises(ValueError):
    EnergyOptions(mode="relax", use_control_file=False)
  assert EnergyOptions().mode == "default"


def test_scratch_files_are_named_after_pid(tmp_path):
  pid = os.getpid()
  with scratch_files(tmp_path) as files:
    assert files.pdb.name == f"{pid}.pdh"
    assert files.output.name == f"{pid}.ec"
    assert files.control.name == f"control.dat.{pid}"
    for fpath in files:
      fpath.write_text("x")
  assert _pid_files(tmp_path) == []


def test_scratch_files_removed_on_error(tmp_path):
  with pytest.raises(RuntimeError):
    with scratch_files(tmp_path, control=False) as files:
      assert files.control is None
      files.pdb.write_text("x")
      raise RuntimeError("boom")
  assert _pid_files(tmp_path) == []


def test_calc_bond_energy_unlinked(structure, tmp_path):
  evaluator = FakeEvaluator(energy=-2.75)
  options = EnergyOptions(scratch_dir=str(tmp_path))
  result = calc_bond_energy(structure, create_hbond("A0012-.OG", "A0015-.OD1"), evaluator, options)

  assert result.ok
  assert result.energy == pytest.approx(-2.75)
  assert result.linkage is Linkage.UNLINKED
  assert str(result) == "HBond 1 Energy: -2.750000"

  call = evaluator.calls[0]
  assert call["chains"] == ["D", "A"]
  # SER: -H +3 HT +OT2, ASP: -H +3 HT +OT2
  assert call["n_atoms"] == (8 + 3) + (9 + 3)
  assert call["control"] == f"PDBFILE {call['pdb_file']}\nIGNTER\n"
  assert _pid_files(tmp_path) == []


def test_calc_bond_energy_fused(structure, tmp_path):
  evaluator = FakeEvaluator()
  options = EnergyOptions(mode="hbonds", scratch_dir=str(tmp_path))
  result = calc_bond_energy(structure, create_hbond("A0012-.OG", "A0013-.O"), evaluator, options)

  assert result.linkage is Linkage.DONOR_ACCEPTOR
  call = evaluator.calls[0]
  assert call["chains"] == ["X"]
  assert call["n_atoms"] == 8 + 6 + 3
  assert call["control"].endswith("IGNTER\nPOTENTIAL\nHBONDS\nEND\n")


def test_calc_bond_energy_direct_mode(structure, tmp_path):
  evaluator = FakeEvaluator()
  options = EnergyOptions(use_control_file=False, scratch_dir=str(tmp_path))
  calc_bond_energy(structure, create_hbond("A0012-.OG", "A0015-.OD1"), evaluator, options)
  assert evaluator.calls[0]["control_file"] is None


def test_calc_bond_energy_cleans_up_after_evaluator_failure(structure, tmp_path):
  evaluator = FakeEvaluator(fail_on={1})
  with pytest.raises(EvaluatorError):
    calc_bond_energy(structure, create_hbond("A0012-.OG", "A0015-.OD1"), evaluator, EnergyOptions(scratch_dir=str(tmp_path)))
  assert _pid_files(tmp_path) == []


def test_calc_bond_energy_unwritable_scratch_dir(structure, tmp_path):
  options = EnergyOptions(scratch_dir=str(tmp_path / "missing"))
  with pytest.raises(ScratchIOError):
    calc_bond_energy(structure, create_hbond("A0012-.OG", "A0015-.OD1"), FakeEvaluator(), options)


def test_iter_energies_filters_and_continues(structure, tmp_path):
  hbonds = [
    create_hbond("A0012-.OG", "A0015-.OD1"),
    parse_hbond_line("A0013-ALA N   A0012-SER O   2.90 MM", index=2),
    create_hbond("A0099-.OG", "A0015-.OD1"),
    create_hbond("A0012-.OG", "A0015-.OXT"),
  ]
  evaluator = FakeEvaluator()
  results = list(iter_energies(structure, hbonds, evaluator, EnergyOptions(scratch_dir=str(tmp_path))))

  assert len(results) == 2
  assert results[0].ok
  assert not results[1].ok
  assert "Donor residue A0099- not found" in results[1].error
  assert math.isnan(results[1].energy)
  assert len(evaluator.calls) == 1


def test_iter_energies_process_all(structure, tmp_path):
  hbonds = [
    create_hbond("A0012-.OG", "A0015-.OD1"),
    parse_hbond_line("A0013-ALA N   A0012-SER O   2.90 MM", index=2),
  ]
  options = EnergyOptions(process_all=True, scratch_dir=str(tmp_path))
  results = list(iter_energies(structure, hbonds, FakeEvaluator(), options))
  assert [r.hbond.index for r in results] == [1, 2]
  assert results[1].linkage is Linkage.ACCEPTOR_DONOR


def test_iter_energies_evaluator_failure_is_not_fatal(structure, tmp_path):
  hbonds = [create_hbond("A0012-.OG", "A0015-.OD1"), create_hbond("A0015-.OD1", "A0012-.OG")]
  results = list(iter_energies(structure, hbonds, FakeEvaluator(fail_on={1}), EnergyOptions(scratch_dir=str(tmp_path))))
  assert [r.ok for r in results] == [False, True]
  assert _pid_files(tmp_path) == []


def test_iter_energies_scratch_failure_is_fatal(structure, tmp_path):
  hbonds = [create_hbond("A0012-.OG", "A0015-.OD1")]
  options = EnergyOptions(scratch_dir=str(tmp_path / "missing"))
  with pytest.raises(ScratchIOError):
    list(iter_energies(structure, hbonds, FakeEvaluator(), options))


def test_calc_energies_dataframe(structure, tmp_path):
  hbonds = [create_hbond("A0012-.OG", "A0015-.OD1"), create_hbond("A0012-.OG", "A0098-.OD1")]
  df = calc_energies(structure, hbonds, FakeEvaluator(energy=-4.0), EnergyOptions(scratch_dir=str(tmp_path)))

  assert list(df.columns) == ["index", "donor", "donor_atom", "acceptor", "acceptor_atom", "bond_type", "linkage", "energy", "status"]
  assert len(df) == 2
  assert df.loc[0, "energy"] == pytest.approx(-4.0)
  assert df.loc[0, "status"] == "ok"
  assert df.loc[0, "linkage"] == "unlinked"
  assert math.isnan(df.loc[1, "energy"])
  assert "not found" in df.loc[1, "status"]


def test_calc_energies_empty(structure):
  df = calc_energies(structure, [], FakeEvaluator())
  assert df.empty


def test_iter_energies_collinear_backbone(tmp_path):
  structure = Structure.from_pdb(io.StringIO(pdb_from_atoms(GLY_12 + ASP_15)))
  evaluator = FakeEvaluator(energy=-0.5)
  hbonds = [create_hbond("A0012-.O", "A0015-.OD1")]
  results = list(iter_energies(structure, hbonds, evaluator, EnergyOptions(scratch_dir=str(tmp_path))))

  assert len(results) == 1
  assert results[0].ok
  assert results[0].energy == pytest.approx(-0.5)
  # GLY: -H +3 HT +OT2, ASP: -H +3 HT +OT2
  assert evaluator.calls[0]["n_atoms"] == (5 + 3) + (9 + 3)
