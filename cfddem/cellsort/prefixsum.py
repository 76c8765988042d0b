"""
Parallel and serial prefix sum (exclusive scan) executor for Taichi.

The parallel scan is the work-efficient up-sweep / down-sweep variant and
assumes the scanned buffer has a power-of-two length. It computes the offsets
of every fluid cell into the cell-sorted particle arrays.
"""

import taichi as ti

from .utils import next_pow2


@ti.data_oriented
class PrefixSumExecutor:

    @ti.kernel
    def serial(self, output: ti.template(), input: ti.template()):
        """Serial exclusive prefix sum."""
        n = input.shape[0]
        output[0] = 0
        ti.loop_config(serialize=True)
        for i in range(1, n):
            output[i] = output[i - 1] + input[i - 1]

    @ti.kernel
    def _reduce(self, d: int, offset: int, output: ti.template()):
        """Up-sweep phase: build partial sums in place."""
        for i in range(d):
            ai = offset * (2 * i + 1) - 1
            bi = offset * (2 * i + 2) - 1
            output[bi] += output[ai]

    @ti.kernel
    def _distribute(self, d: int, offset: int, output: ti.template()):
        """Down-sweep phase: push the partial sums back down the tree."""
        for i in range(d):
            ai = offset * (2 * i + 1) - 1
            bi = offset * (2 * i + 2) - 1
            tmp = output[ai]
            output[ai] = output[bi]
            output[bi] += tmp

    @ti.kernel
    def _copy(self, output: ti.template(), input: ti.template()):
        for i in input:
            output[i] = input[i]

    def parallel_fast(self, output, input, cal_total=False):
        """
        Exclusive scan of a 1D integer field into output.

        Args:
            output (ti.template()): Field receiving the scan, same length as input.
            input (ti.template()): Field of power-of-two length.
            cal_total (bool): Also return the sum of all input values.
        """
        n = input.shape[0]
        if next_pow2(n) != n:
            raise ValueError(f"parallel_fast requires a power-of-two input length, got {n}")
        self._copy(output, input)

        offset = 1
        d = n >> 1
        while d > 0:
            self._reduce(d, offset, output)
            offset <<= 1
            d >>= 1

        output[n - 1] = 0
        d = 1
        while d < n:
            offset >>= 1
            self._distribute(d, offset, output)
            d <<= 1

        if cal_total:
            return output[n - 1] + input[n - 1]
