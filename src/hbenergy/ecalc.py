"""
Wrapper around the external ``ecalc`` energy program.

ecalc is either driven by a control file (``ecalc <control>``) or pointed
directly at a coordinate file (``ecalc -p <pdb>``). Its report goes to
stdout; the total energy is the fifth field of the report's second line.
"""

import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Union

from hbenergy.constants import ECALC_BINARY, ECALC_TIMEOUT, ENERGY_MODES
from hbenergy.errors import EvaluatorError, ScratchIOError
from hbenergy.log import logger

PathLike = Union[str, os.PathLike]


### FUNCTIONS ###
def check_mode(mode: str):
  """Raises ValueError unless ``mode`` is one of ``default``, ``relax`` or ``hbonds``."""
  if mode not in ENERGY_MODES:
    raise ValueError(f'Unknown energy mode "{mode}". Must be one of {sorted(ENERGY_MODES)}.')


def control_directives(pdb_file: PathLike, mode: str = "default") -> List[str]:
  """Returns the lines of an ecalc control file.

  Parameters:
    pdb_file: Coordinate file ecalc should read
    mode: ``default`` for a single point energy, ``relax`` to relax the structure
      first, ``hbonds`` to restrict the potential to hydrogen bond terms

  """
  check_mode(mode)
  lines = [f"PDBFILE {pdb_file}", "IGNTER"]
  if mode == "hbonds":
    lines += ["POTENTIAL", "HBONDS", "END"]
  elif mode == "relax":
    lines.append("RELAX")
  return lines


def write_control_file(fpath: PathLike, pdb_file: PathLike, mode: str = "default"):
  """Writes an ecalc control file, see :obj:`control_directives`."""
  lines = control_directives(pdb_file, mode)
  with open(fpath, "w") as fh:
    fh.write("\n".join(lines) + "\n")


def parse_ecalc_output(fpath: PathLike) -> float:
  """Extracts the energy from an ecalc report.
  The first line is skipped; the fifth whitespace separated field of the
  second line is the energy.

  Parameters:
    fpath: File holding ecalc's stdout

  Returns:
    The energy

  Raises:
    EvaluatorError: If the report cannot be read or has no energy where expected

  """
  try:
    with open(fpath, "r") as fh:
      fh.readline()
      line = fh.readline()
  except OSError as e:
    raise EvaluatorError(f"Unable to read ecalc output {fpath}: {e}")

  fields = line.split()
  if len(fields) < 5:
    raise EvaluatorError(f"No energy found in ecalc output {fpath}")
  try:
    return float(fields[4])
  except ValueError:
    raise EvaluatorError(f'Invalid energy "{fields[4]}" in ecalc output {fpath}')


### CLASSES ###
class ECalc:
  def __init__(self, binary: str = ECALC_BINARY, timeout: Optional[float] = ECALC_TIMEOUT, retries: int = 0, retry_interval: float = 1.0):
    """Runs ecalc as a subprocess.

    Instances are callables with the same signature as any other
    evaluator accepted by :obj:`hbenergy.pipeline.calc_bond_energy`:
    ``evaluator(pdb_file, control_file, output_file)``.

    Parameters:
      binary: Name or path of the ecalc executable
      timeout: Seconds to wait for one ecalc run, ``None`` waits forever
      retries: Number of extra attempts after a failed run
      retry_interval: Seconds to wait between attempts

    Raises:
      FileNotFoundError: If the executable cannot be found

    """
    path = shutil.which(binary)
    if path is None:
      raise FileNotFoundError(f"Cannot find {binary}. Please ensure ecalc is installed and added to your PATH.")
    self.binary = path
    self.timeout = timeout
    self.retries = max(0, retries)
    self.retry_interval = retry_interval

  def __repr__(self):
    return f"<ECalc: binary={self.binary} timeout={self.timeout} retries={self.retries}>"

  def command(self, pdb_file: PathLike, control_file: Optional[PathLike] = None) -> List[str]:
    """Returns the argument list for one run, control file form when ``control_file`` is given."""
    if control_file is not None:
      return [self.binary, os.path.abspath(control_file)]
    return [self.binary, "-p", os.path.abspath(pdb_file)]

  def __call__(self, pdb_file: PathLike, control_file: Optional[PathLike], output_file: PathLike) -> float:
    """Runs ecalc and returns the energy it reports.

    Parameters:
      pdb_file: Coordinate file to evaluate
      control_file: Control file naming ``pdb_file``, or ``None`` to use the ``-p`` form
      output_file: File that receives ecalc's stdout

    Returns:
      The energy

    Raises:
      EvaluatorError: If every attempt failed, timed out, or produced no energy

    """
    cmd = self.command(pdb_file, control_file)
    attempt = 0
    while True:
      try:
        self._run(cmd, Path(output_file))
        return parse_ecalc_output(output_file)
      except EvaluatorError as e:
        if attempt >= self.retries:
          raise
        attempt += 1
        logger.warning(f"{e}, retrying ({attempt}/{self.retries})")
        time.sleep(self.retry_interval)

  def _run(self, cmd: List[str], output_file: Path):
    logger.debug(f"Running {' '.join(cmd)}")
    try:
      out = open(output_file, "w")
    except OSError as e:
      raise ScratchIOError(f"Can't write ecalc output file {output_file}: {e}")

    try:
      with out:
        subprocess.run(cmd, cwd=output_file.parent, check=True, stdout=out, stderr=subprocess.PIPE, timeout=self.timeout)
    except subprocess.CalledProcessError as e:
      raise EvaluatorError(f"ecalc exited with status {e.returncode}: {e.stderr.decode(errors='replace').strip()}")
    except subprocess.TimeoutExpired:
      raise EvaluatorError(f"ecalc did not finish within {self.timeout} seconds")
    except OSError as e:
      raise EvaluatorError(f"Unable to run ecalc: {e}")
