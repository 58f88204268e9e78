"""
Output Sinks
============

Destinations for per-block forecast output. Each block is written as soon
as it is assembled, keyed by output variable and tagged with the draw
indices it holds, so that memory stays bounded by one block.

- InMemorySink: keeps blocks in a dict (tests, small runs)
- MatFileSink: one .mat file per (output variable, block) in an output
  directory, combined into one file per output variable at the end
"""

import glob
import os
from typing import Dict, List, Optional, Sequence

import numpy as np
import scipy.io

from .errors import ConfigurationError


def _combine_blocks(blocks: List) -> np.ndarray:
    """Concatenate (draw_inds, array) blocks in draw order along axis 0."""
    blocks = sorted(blocks, key=lambda blk: int(blk[0][0]) if len(blk[0]) else -1)
    draw_inds = np.concatenate([blk[0] for blk in blocks])
    if len(np.unique(draw_inds)) != len(draw_inds):
        raise ValueError("Duplicate draw indices across blocks")
    return np.concatenate([blk[1] for blk in blocks], axis=0)


class InMemorySink:
    """Collects block output in memory."""

    def __init__(self, tag: str = ""):
        self.tag = tag
        self.blocks: Dict[str, List] = {}

    def write(self, output_var: str, values: np.ndarray,
              draw_inds: Sequence[int], block_number: int = 0) -> None:
        """
        Store one block of an output variable.

        Args:
            output_var: Output variable name
            values: Block output with draws along axis 0
            draw_inds: Output draw index of each row of values
            block_number: Block counter (unused in memory)
        """
        draw_inds = np.asarray(draw_inds, dtype=int).ravel()
        values = np.asarray(values)
        if values.shape[0] != len(draw_inds):
            raise ValueError(f"{output_var}: {values.shape[0]} rows for "
                             f"{len(draw_inds)} draw indices")
        self.blocks.setdefault(output_var, []).append((draw_inds, values))

    def derive(self, tag: str) -> 'InMemorySink':
        """Sibling sink for a second set of outputs."""
        return InMemorySink(tag=tag)

    def combine(self, output_vars: Optional[Sequence[str]] = None) -> Dict[str, np.ndarray]:
        """Concatenate all blocks per output variable in draw order."""
        output_vars = list(self.blocks) if output_vars is None else output_vars
        return {var: _combine_blocks(self.blocks[var])
                for var in output_vars if var in self.blocks}

    def read(self, output_var: str) -> np.ndarray:
        if output_var not in self.blocks:
            raise KeyError(f"No output written for {output_var}")
        return _combine_blocks(self.blocks[output_var])


class MatFileSink:
    """
    Writes block output to .mat files.

    Block files are named '{tag}{output_var}_block{n:04d}.mat' and hold the
    array ('arr'), its shape ('shape') and the draw indices ('draw_inds').
    combine() replaces them with '{tag}{output_var}.mat'.
    """

    def __init__(self, output_dir: str, tag: str = ""):
        self.output_dir = output_dir
        self.tag = tag
        os.makedirs(output_dir, exist_ok=True)

    def _prefix(self, output_var: str) -> str:
        return os.path.join(self.output_dir, f"{self.tag}{output_var}")

    def block_path(self, output_var: str, block_number: int) -> str:
        return f"{self._prefix(output_var)}_block{block_number:04d}.mat"

    def output_path(self, output_var: str) -> str:
        return f"{self._prefix(output_var)}.mat"

    def write(self, output_var: str, values: np.ndarray,
              draw_inds: Sequence[int], block_number: int = 0) -> None:
        """
        Save one block of an output variable.

        Args:
            output_var: Output variable name
            values: Block output with draws along axis 0
            draw_inds: Output draw index of each row of values
            block_number: Block counter, part of the file name
        """
        draw_inds = np.asarray(draw_inds, dtype=int).ravel()
        values = np.asarray(values, dtype=float)
        if values.shape[0] != len(draw_inds):
            raise ValueError(f"{output_var}: {values.shape[0]} rows for "
                             f"{len(draw_inds)} draw indices")
        scipy.io.savemat(self.block_path(output_var, block_number),
                         {'arr': values,
                          'shape': np.array(values.shape, dtype=float),
                          'draw_inds': draw_inds.astype(float)},
                         do_compression=True)

    def derive(self, tag: str) -> 'MatFileSink':
        """Sibling sink writing to the same directory under another tag."""
        return MatFileSink(self.output_dir, tag=f"{self.tag}{tag}_")

    def _read_block(self, path: str):
        mat = scipy.io.loadmat(path)
        shape = tuple(int(n) for n in np.ravel(mat['shape']))
        values = np.reshape(mat['arr'], shape)
        draw_inds = np.ravel(mat['draw_inds']).astype(int)
        return draw_inds, values

    def block_files(self, output_var: str) -> List[str]:
        return sorted(glob.glob(f"{glob.escape(self._prefix(output_var))}_block[0-9][0-9][0-9][0-9].mat"))

    def combine(self, output_vars: Sequence[str]) -> Dict[str, str]:
        """
        Merge block files into one file per output variable.

        Returns:
            Mapping of output variable to combined file path
        """
        paths = {}
        for var in output_vars:
            files = self.block_files(var)
            if not files:
                continue
            blocks = [self._read_block(path) for path in files]
            values = _combine_blocks(blocks)
            draw_inds = np.sort(np.concatenate([blk[0] for blk in blocks]))
            scipy.io.savemat(self.output_path(var),
                             {'arr': values,
                              'shape': np.array(values.shape, dtype=float),
                              'draw_inds': draw_inds.astype(float)},
                             do_compression=True)
            for path in files:
                os.remove(path)
            paths[var] = self.output_path(var)
        return paths

    def read(self, output_var: str) -> np.ndarray:
        """Load a combined output variable."""
        path = self.output_path(output_var)
        if not os.path.exists(path):
            raise ConfigurationError(f"No combined output for {output_var} in {self.output_dir}")
        return self._read_block(path)[1]
