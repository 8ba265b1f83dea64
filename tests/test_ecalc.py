"""
Tests for the ecalc wrapper, run against small shell scripts standing in for ecalc.
"""

import shutil
import stat

import pytest

from hbenergy.ecalc import ECalc, control_directives, parse_ecalc_output, write_control_file
from hbenergy.errors import EvaluatorError

needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")


def _script(tmp_path, body, name="ecalc"):
  fpath = tmp_path / name
  fpath.write_text("#!/bin/sh\n" + body + "\n")
  fpath.chmod(fpath.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
  return fpath


def test_control_directives_modes():
  assert control_directives("/tmp/1.pdh") == ["PDBFILE /tmp/1.pdh", "IGNTER"]
  assert control_directives("/tmp/1.pdh", "relax") == ["PDBFILE /tmp/1.pdh", "IGNTER", "RELAX"]
  assert control_directives("/tmp/1.pdh", "hbonds") == ["PDBFILE /tmp/1.pdh", "IGNTER", "POTENTIAL", "HBONDS", "END"]
  with pytest.raises(ValueError):
    control_directives("/tmp/1.pdh", "minimise")


def test_write_control_file(tmp_path):
  fpath = tmp_path / "control.dat.1"
  write_control_file(fpath, "/tmp/1.pdh", "hbonds")
  assert fpath.read_text() == "PDBFILE /tmp/1.pdh\nIGNTER\nPOTENTIAL\nHBONDS\nEND\n"


def test_parse_ecalc_output(tmp_path):
  fpath = tmp_path / "1.ec"
  fpath.write_text("ECALC V1.5\nTotal energy is : -12.345678 kcal/mol\n")
  assert parse_ecalc_output(fpath) == pytest.approx(-12.345678)


@pytest.mark.parametrize(
  "content",
  [
    "",
    "ECALC V1.5\n",
    "ECALC V1.5\nTotal energy is\n",
    "ECALC V1.5\nTotal energy is : garbage\n",
  ],
)
def test_parse_ecalc_output_without_energy(tmp_path, content):
  fpath = tmp_path / "1.ec"
  fpath.write_text(content)
  with pytest.raises(EvaluatorError):
    parse_ecalc_output(fpath)


def test_parse_ecalc_output_missing_file(tmp_path):
  with pytest.raises(EvaluatorError):
    parse_ecalc_output(tmp_path / "missing.ec")


def test_ecalc_missing_binary(tmp_path):
  with pytest.raises(FileNotFoundError):
    ECalc(str(tmp_path / "no-such-ecalc"))


@needs_sh
def test_ecalc_command_forms(tmp_path):
  ecalc = ECalc(str(_script(tmp_path, "exit 0")))
  assert ecalc.command(tmp_path / "1.pdh", tmp_path / "control.dat.1") == [ecalc.binary, str(tmp_path / "control.dat.1")]
  assert ecalc.command(tmp_path / "1.pdh") == [ecalc.binary, "-p", str(tmp_path / "1.pdh")]


@needs_sh
def test_ecalc_runs_with_control_file(tmp_path):
  ecalc = ECalc(str(_script(tmp_path, 'echo "ECALC V1.5"\nhead -n 1 "$1" >&2\necho "Total energy is : -3.25"')))
  pdb_file = tmp_path / "1.pdh"
  pdb_file.write_text("END\n")
  control = tmp_path / "control.dat.1"
  write_control_file(control, pdb_file)
  output = tmp_path / "1.ec"

  assert ecalc(pdb_file, control, output) == pytest.approx(-3.25)
  assert output.read_text().splitlines()[0] == "ECALC V1.5"


@needs_sh
def test_ecalc_runs_direct(tmp_path):
  ecalc = ECalc(str(_script(tmp_path, '[ "$1" = "-p" ] || exit 2\necho header\necho "E = 1 2 4.5"')))
  assert ecalc(tmp_path / "1.pdh", None, tmp_path / "1.ec") == pytest.approx(4.5)


@needs_sh
def test_ecalc_nonzero_exit(tmp_path):
  ecalc = ECalc(str(_script(tmp_path, 'echo "no structure" >&2\nexit 3')))
  with pytest.raises(EvaluatorError, match="status 3"):
    ecalc(tmp_path / "1.pdh", None, tmp_path / "1.ec")


@needs_sh
def test_ecalc_timeout(tmp_path):
  ecalc = ECalc(str(_script(tmp_path, "exec sleep 5")), timeout=0.2)
  with pytest.raises(EvaluatorError, match="did not finish"):
    ecalc(tmp_path / "1.pdh", None, tmp_path / "1.ec")


@needs_sh
def test_ecalc_retries(tmp_path, monkeypatch):
  ecalc = ECalc(str(_script(tmp_path, "exit 0")), retries=2, retry_interval=0)
  calls = []

  def fake_run(cmd, output_file):
    calls.append(cmd)
    if len(calls) < 3:
      raise EvaluatorError("ecalc exited with status 1")
    output_file.write_text("header\nTotal energy is : -7.5\n")

  monkeypatch.setattr(ecalc, "_run", fake_run)
  assert ecalc(tmp_path / "1.pdh", None, tmp_path / "1.ec") == pytest.approx(-7.5)
  assert len(calls) == 3


@needs_sh
def test_ecalc_retries_exhausted(tmp_path):
  ecalc = ECalc(str(_script(tmp_path, "exit 1")), retries=1, retry_interval=0)
  with pytest.raises(EvaluatorError):
    ecalc(tmp_path / "1.pdh", None, tmp_path / "1.ec")
