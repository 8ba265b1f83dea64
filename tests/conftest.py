import io

import pytest

from hbenergy.structure import Structure

# (atom name, residue name, chain, residue number, x, y, z, element)
SER_12 = [
  ("N", "SER", "A", 12, 0.000, 0.000, 0.000, "N"),
  ("H", "SER", "A", 12, -0.500, -0.850, 0.000, "H"),
  ("CA", "SER", "A", 12, 1.458, 0.000, 0.000, "C"),
  ("C", "SER", "A", 12, 2.009, 1.420, 0.000, "C"),
  ("O", "SER", "A", 12, 1.251, 2.390, 0.000, "O"),
  ("CB", "SER", "A", 12, 1.986, -0.773, -1.207, "C"),
  ("OG", "SER", "A", 12, 3.400, -0.800, -1.200, "O"),
  ("HG", "SER", "A", 12, 3.700, -1.600, -1.600, "H"),
]

# peptide bonded to SER 12
ALA_13 = [
  ("N", "ALA", "A", 13, 3.326, 1.600, 0.000, "N"),
  ("H", "ALA", "A", 13, 3.900, 0.800, 0.000, "H"),
  ("CA", "ALA", "A", 13, 3.950, 2.900, 0.000, "C"),
  ("C", "ALA", "A", 13, 5.450, 2.800, 0.000, "C"),
  ("O", "ALA", "A", 13, 6.100, 1.750, 0.000, "O"),
  ("CB", "ALA", "A", 13, 3.500, 3.700, 1.200, "C"),
]

ASP_15 = [
  ("N", "ASP", "A", 15, 12.000, 0.000, 0.000, "N"),
  ("H", "ASP", "A", 15, 11.500, -0.850, 0.000, "H"),
  ("CA", "ASP", "A", 15, 13.458, 0.000, 0.000, "C"),
  ("C", "ASP", "A", 15, 14.009, 1.420, 0.000, "C"),
  ("O", "ASP", "A", 15, 13.251, 2.390, 0.000, "O"),
  ("CB", "ASP", "A", 15, 13.986, -0.773, -1.207, "C"),
  ("CG", "ASP", "A", 15, 15.400, -0.800, -1.200, "C"),
  ("OD1", "ASP", "A", 15, 16.000, 0.200, -1.500, "O"),
  ("OD2", "ASP", "A", 15, 16.000, -1.850, -1.000, "O"),
]

# N, CA and C on one line
GLY_12 = [
  ("N", "GLY", "A", 12, 0.000, 0.000, 0.000, "N"),
  ("H", "GLY", "A", 12, -0.500, -0.850, 0.000, "H"),
  ("CA", "GLY", "A", 12, 1.458, 0.000, 0.000, "C"),
  ("C", "GLY", "A", 12, 2.980, 0.000, 0.000, "C"),
  ("O", "GLY", "A", 12, 3.500, 1.000, 0.000, "O"),
]

PRO_20 = [
  ("N", "PRO", "B", 20, 0.000, 0.000, 0.000, "N"),
  ("CA", "PRO", "B", 20, 1.458, 0.000, 0.000, "C"),
  ("C", "PRO", "B", 20, 2.009, 1.420, 0.000, "C"),
  ("O", "PRO", "B", 20, 1.251, 2.390, 0.000, "O"),
  ("CB", "PRO", "B", 20, 1.950, -0.850, -1.150, "C"),
  ("CG", "PRO", "B", 20, 0.850, -1.000, -2.150, "C"),
  ("CD", "PRO", "B", 20, -0.400, -0.700, -1.250, "C"),
]


def pdb_from_atoms(atom_defs):
  lines = []
  for serial, (atom_name, resname, chain_id, resid, x, y, z, element) in enumerate(atom_defs, start=1):
    name = f" {atom_name:<3s}" if len(atom_name) < 4 else atom_name
    lines.append(
      f"ATOM  {serial:5d} {name} {resname:>3s} {chain_id:1s}{resid:4d}    "
      f"{x:8.3f}{y:8.3f}{z:8.3f}  1.00 20.00          {element:>2s}"
    )
  lines.append("TER")
  lines.append("END")
  return "\n".join(lines) + "\n"


@pytest.fixture
def structure():
  return Structure.from_pdb(io.StringIO(pdb_from_atoms(SER_12 + ALA_13 + ASP_15)))


@pytest.fixture
def pdh_file(tmp_path):
  fpath = tmp_path / "test.pdh"
  fpath.write_text(pdb_from_atoms(SER_12 + ALA_13 + ASP_15))
  return fpath
