import logging
import unittest
from unittest import mock

import numpy as np

import radixplan
from radixplan import mixed_radix
from radixplan import MixedRadixPlan, ButterflyKernel, DirectDFTKernel, create_plan
from radixplan.errors import (
    InvalidSize, NotDecomposable, AllocationFailure, RecursiveBuildFailure,
    PlanStateError,
)


def direct_dft(x, sign=-1):
    """Reference O(N^2) DFT with no scaling."""
    n = len(x)
    k = np.arange(n)
    matrix = np.exp(sign * 2j * np.pi * np.outer(k, k) / n)
    return matrix @ x


class TestMixedRadixPlan(unittest.TestCase):

    def setUp(self):
        # fixed seed for reproducibility
        np.random.seed(42)
        self.composite_sizes = [4, 6, 8, 9, 12, 15, 16, 18, 20, 21, 25, 26, 27,
                                30, 36, 49, 60, 64, 77, 100, 105, 128, 360]
        self.tol = 1e-9
        self.stats_before = radixplan.get_stats()

    def _random(self, n, dtype=np.complex128):
        return (np.random.randn(n) + 1j * np.random.randn(n)).astype(dtype)

    def _assert_allclose(self, a, b, msg=None, tol=None):
        tol = self.tol if tol is None else tol
        self.assertTrue(np.allclose(a, b, rtol=tol, atol=tol), msg)

    def _assert_no_leak(self):
        after = radixplan.get_stats()
        self.assertEqual(after['live_plans'], self.stats_before['live_plans'],
                         "plan nodes leaked")
        self.assertEqual(after['live_bytes'], self.stats_before['live_bytes'],
                         "plan buffers leaked")

    # ===== CORRECTNESS =====

    def test_forward_matches_direct_dft(self):
        """Forward plans match an O(N^2) DFT for composite sizes"""
        for n in self.composite_sizes:
            x = self._random(n)
            y = np.zeros(n, dtype=np.complex128)
            with radixplan.build_plan(n, x, y, radixplan.FORWARD) as plan:
                plan.execute()
            self._assert_allclose(y, direct_dft(x, -1), f"forward failed for {n}")
            self._assert_allclose(y, np.fft.fft(x), f"forward != numpy for {n}")

    def test_inverse_matches_direct_dft(self):
        """Inverse plans match an O(N^2) DFT with +i exponent and no scaling"""
        for n in self.composite_sizes:
            x = self._random(n)
            y = np.zeros(n, dtype=np.complex128)
            with radixplan.build_plan(n, x, y, radixplan.INVERSE) as plan:
                plan.execute()
            self._assert_allclose(y, direct_dft(x, +1), f"inverse failed for {n}")
            self._assert_allclose(y, np.fft.ifft(x) * n, f"inverse != numpy for {n}")

    def test_roundtrip(self):
        """Forward then inverse with external 1/N scaling restores the input"""
        for n in [12, 100, 360]:
            x = self._random(n)
            spectrum = np.zeros(n, dtype=np.complex128)
            restored = np.zeros(n, dtype=np.complex128)
            forward = radixplan.build_plan(n, x, spectrum, radixplan.FORWARD)
            inverse = radixplan.build_plan(n, spectrum, restored, radixplan.INVERSE)
            radixplan.execute(forward)
            radixplan.execute(inverse)
            self._assert_allclose(restored / n, x, f"roundtrip failed for {n}")
            radixplan.destroy_plan(forward)
            radixplan.destroy_plan(inverse)
        self._assert_no_leak()

    def test_impulse_six_points(self):
        """6-point DFT of a unit impulse is all ones, with P=3 and Q=2"""
        x = np.array([1, 0, 0, 0, 0, 0], dtype=np.complex128)
        y = np.zeros(6, dtype=np.complex128)
        with radixplan.build_plan(6, x, y, radixplan.FORWARD) as plan:
            self.assertEqual(plan.factor_p, 3)
            self.assertEqual(plan.factor_q, 2)
            plan.execute()
        self._assert_allclose(y, np.ones(6, dtype=np.complex128), "impulse DFT not flat")

    def test_output_ordering(self):
        """Each output bin lands at col * P + row (natural frequency order)"""
        n = 12
        for k in range(n):
            x = np.exp(2j * np.pi * k * np.arange(n) / n)
            y = np.zeros(n, dtype=np.complex128)
            with radixplan.build_plan(n, x, y, radixplan.FORWARD) as plan:
                plan.execute()
            expected = np.zeros(n, dtype=np.complex128)
            expected[k] = n
            self._assert_allclose(y, expected, f"tone {k} in wrong bin")

    def test_prime_children_use_direct_dft(self):
        """Composite sizes with prime factors above 4 recurse into a prime kernel"""
        n = 77  # 11 x 7
        x = self._random(n)
        y = np.zeros(n, dtype=np.complex128)
        with radixplan.build_plan(n, x, y, 'forward') as plan:
            self.assertIsInstance(plan.child_p, DirectDFTKernel)
            self.assertIsInstance(plan.child_q, DirectDFTKernel)
            plan.execute()
        self._assert_allclose(y, np.fft.fft(x), "77-point transform failed")

    def test_single_precision(self):
        """complex64 buffers give single-precision results"""
        n = 60
        x = self._random(n, np.complex64)
        y = np.zeros(n, dtype=np.complex64)
        with radixplan.build_plan(n, x, y, radixplan.FORWARD) as plan:
            self.assertEqual(plan.twiddle_table.dtype, np.complex64)
            plan.execute()
        self._assert_allclose(y, np.fft.fft(x.astype(np.complex128)), tol=1e-4)

    def test_in_place(self):
        """Input and output may be the same buffer"""
        n = 36
        x = self._random(n)
        expected = np.fft.fft(x)
        with radixplan.build_plan(n, x, x, radixplan.FORWARD) as plan:
            plan.execute()
        self._assert_allclose(x, expected, "in-place transform failed")

    # ===== REUSE AND DETERMINISM =====

    def test_independent_plans_identical(self):
        """Two plans of the same size give bit-identical output"""
        n = 360
        x = self._random(n)
        y1 = np.zeros(n, dtype=np.complex128)
        y2 = np.zeros(n, dtype=np.complex128)
        with radixplan.build_plan(n, x, y1, radixplan.FORWARD) as p1, \
                radixplan.build_plan(n, x, y2, radixplan.FORWARD) as p2:
            p1.execute()
            p2.execute()
        np.testing.assert_array_equal(y1, y2)

    def test_repeated_execute(self):
        """Re-executing with new input contents is not contaminated by old calls"""
        n = 100
        x = np.zeros(n, dtype=np.complex128)
        y = np.zeros(n, dtype=np.complex128)
        with radixplan.build_plan(n, x, y, radixplan.FORWARD) as plan:
            for i in range(5):
                x[:] = self._random(n)
                plan.execute()
                self._assert_allclose(y, direct_dft(x), f"execute #{i} contaminated")
            # executing the same input twice gives the same answer
            first = y.copy()
            plan.execute()
            np.testing.assert_array_equal(y, first)

    def test_input_not_modified(self):
        """Execution never writes the bound input buffer"""
        n = 48
        x = self._random(n)
        original = x.copy()
        y = np.zeros(n, dtype=np.complex128)
        with radixplan.build_plan(n, x, y, radixplan.FORWARD) as plan:
            plan.execute()
        np.testing.assert_array_equal(x, original)

    # ===== CONSTRUCTION ERRORS =====

    def test_prime_size_not_decomposable(self):
        """build_plan with a prime size raises NotDecomposable"""
        x = np.zeros(13, dtype=np.complex128)
        y = np.zeros(13, dtype=np.complex128)
        with self.assertRaises(NotDecomposable):
            radixplan.build_plan(13, x, y, radixplan.FORWARD)
        self._assert_no_leak()

    def test_invalid_sizes(self):
        """Sizes 0 and 1 raise InvalidSize before any allocation"""
        for n in [0, 1]:
            x = np.zeros(n, dtype=np.complex128)
            y = np.zeros(n, dtype=np.complex128)
            with self.assertRaises(InvalidSize):
                radixplan.build_plan(n, x, y, radixplan.FORWARD)
        with self.assertRaises(InvalidSize):
            radixplan.build_plan(6.0, np.zeros(6, complex), np.zeros(6, complex))
        self._assert_no_leak()

    def test_bad_buffers(self):
        """Buffers must be 1-D complex arrays of exactly the plan size"""
        good = np.zeros(12, dtype=np.complex128)
        for bad in [np.zeros(11, dtype=np.complex128),
                    np.zeros((3, 4), dtype=np.complex128),
                    np.zeros(12, dtype=np.float64),
                    [0j] * 12]:
            with self.assertRaises(ValueError):
                radixplan.build_plan(12, bad, good)
            with self.assertRaises(ValueError):
                radixplan.build_plan(12, good, bad)
        with self.assertRaises(ValueError):
            radixplan.build_plan(12, good, good, direction='sideways')
        self._assert_no_leak()

    def test_prime_child_without_kernel(self):
        """A prime child with no kernel fails the whole build, chained to the cause"""
        n = 26  # 13 x 2
        x = np.zeros(n, dtype=np.complex128)
        y = np.zeros(n, dtype=np.complex128)
        with self.assertRaises(RecursiveBuildFailure) as ctx:
            radixplan.build_plan(n, x, y, radixplan.FORWARD,
                                 options={'prime_kernel': None})
        self.assertEqual(ctx.exception.size, 26)
        self.assertEqual(ctx.exception.child_size, 13)
        self.assertIsInstance(ctx.exception.__cause__, NotDecomposable)
        self._assert_no_leak()

    def test_deep_failure_propagates_unchanged(self):
        """A failure two levels down reaches the top without re-wrapping"""
        n = 52  # 26 x 2, 26 = 13 x 2
        x = np.zeros(n, dtype=np.complex128)
        y = np.zeros(n, dtype=np.complex128)
        with self.assertRaises(RecursiveBuildFailure) as ctx:
            radixplan.build_plan(n, x, y, radixplan.FORWARD,
                                 options={'prime_kernel': None})
        self.assertEqual(ctx.exception.size, 26)
        self.assertEqual(ctx.exception.child_size, 13)
        self.assertIsInstance(ctx.exception.__cause__, NotDecomposable)
        self._assert_no_leak()

    def test_partial_construction_released(self):
        """Children built before a failing sibling are destroyed"""
        built = []

        def factory(size, input, output, direction, options):
            if size == 2:
                raise AllocationFailure("simulated allocation failure")
            plan = create_plan(size, input, output, direction, options)
            built.append(plan)
            return plan

        n = 12  # child_p = 6 builds fine, child_q = 2 fails
        x = np.zeros(n, dtype=np.complex128)
        y = np.zeros(n, dtype=np.complex128)
        with self.assertRaises(RecursiveBuildFailure) as ctx:
            MixedRadixPlan(n, x, y, radixplan.FORWARD, factory=factory)
        self.assertEqual(ctx.exception.child_size, 2)
        self.assertIsInstance(ctx.exception.__cause__, AllocationFailure)
        self.assertEqual(len(built), 1)
        self.assertTrue(built[0].destroyed, "already built child was not released")
        self._assert_no_leak()

    def test_buffer_allocation_failure(self):
        """A MemoryError while allocating buffers becomes AllocationFailure"""
        real_empty_aligned = mixed_radix.pyfftw.empty_aligned
        calls = []

        def failing_empty_aligned(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise MemoryError("out of memory")
            return real_empty_aligned(*args, **kwargs)

        x = self._random(12)
        y = np.zeros(12, dtype=np.complex128)
        with mock.patch.object(mixed_radix.pyfftw, 'empty_aligned',
                               side_effect=failing_empty_aligned):
            with self.assertRaises(AllocationFailure) as ctx:
                MixedRadixPlan(12, x, y, radixplan.FORWARD)
        self.assertIsInstance(ctx.exception, MemoryError)
        self.assertIsInstance(ctx.exception.__cause__, MemoryError)
        self.assertEqual(len(calls), 2)
        self._assert_no_leak()

    # ===== LIFECYCLE =====

    def test_build_destroy_cycles(self):
        """Many build/destroy cycles leave no live plans or buffers behind"""
        n = 360
        x = self._random(n)
        y = np.zeros(n, dtype=np.complex128)
        built_before = radixplan.get_stats()['plans_built']
        for _ in range(200):
            plan = radixplan.build_plan(n, x, y, radixplan.FORWARD)
            radixplan.destroy_plan(plan)
        self._assert_no_leak()
        self.assertGreater(radixplan.get_stats()['plans_built'], built_before + 200)

    def test_destroy_is_recursive(self):
        """Destroying a plan destroys its whole tree and drops its buffers"""
        n = 360
        x = self._random(n)
        y = np.zeros(n, dtype=np.complex128)
        plan = radixplan.build_plan(n, x, y, radixplan.FORWARD)
        nodes = []
        stack = [plan]
        while stack:
            node = stack.pop()
            nodes.append(node)
            stack.extend(node.children)
        self.assertGreater(len(nodes), 3)

        plan.destroy()
        self.assertTrue(all(node.destroyed for node in nodes))
        self.assertIsNone(plan.twiddle_table)
        self.assertIsNone(plan.scratch_a)
        # second destroy is a no-op
        plan.destroy()
        self._assert_no_leak()

    def test_execute_after_destroy(self):
        """Executing a destroyed plan raises PlanStateError"""
        x = np.zeros(12, dtype=np.complex128)
        y = np.zeros(12, dtype=np.complex128)
        plan = radixplan.build_plan(12, x, y)
        plan.destroy()
        with self.assertRaises(PlanStateError):
            plan.execute()

    def test_reentrant_execute_rejected(self):
        """A plan cannot be executed again while it is executing"""
        holder = {}

        class ReentrantKernel(ButterflyKernel):
            def _execute(self):
                holder['top'].execute()

        def factory(size, input, output, direction, options):
            return ReentrantKernel(size, input, output, direction, options)

        x = np.zeros(4, dtype=np.complex128)
        y = np.zeros(4, dtype=np.complex128)
        with MixedRadixPlan(4, x, y, radixplan.FORWARD, factory=factory) as plan:
            holder['top'] = plan
            with self.assertRaises(PlanStateError):
                plan.execute()
            # the busy flag is cleared again after the failed call
            holder['top'] = None
            plan.child_p.execute = lambda: None
            plan.child_q.execute = lambda: None
            plan.execute()

    # ===== STRUCTURE =====

    def test_children_share_scratch(self):
        """Both children read scratch_a and write scratch_b without copies"""
        n = 360
        x = np.zeros(n, dtype=np.complex128)
        y = np.zeros(n, dtype=np.complex128)
        with radixplan.build_plan(n, x, y) as plan:
            self.assertEqual(plan.factor_p * plan.factor_q, n)
            self.assertEqual(len(plan.scratch_a), max(plan.factor_p, plan.factor_q))
            self.assertEqual(len(plan.internal_buffer), n)
            for child, size in [(plan.child_p, plan.factor_p), (plan.child_q, plan.factor_q)]:
                self.assertEqual(child.size, size)
                self.assertEqual(child.direction, plan.direction)
                self.assertTrue(np.shares_memory(child.input, plan.scratch_a))
                self.assertTrue(np.shares_memory(child.output, plan.scratch_b))
            self.assertIs(plan.external_input, x)
            self.assertIs(plan.external_output, y)

    def test_twiddle_table(self):
        """Twiddles are unit-magnitude, signed by direction and read-only"""
        n = 24
        for direction, sign in [(radixplan.FORWARD, -1), (radixplan.INVERSE, 1)]:
            x = np.zeros(n, dtype=np.complex128)
            y = np.zeros(n, dtype=np.complex128)
            with radixplan.build_plan(n, x, y, direction) as plan:
                table = plan.twiddle_table
                self.assertEqual(len(table), n)
                expected = np.exp(sign * 2j * np.pi * np.arange(n) / n)
                self._assert_allclose(table, expected)
                self._assert_allclose(np.abs(table), np.ones(n))
                with self.assertRaises(ValueError):
                    table[0] = 0

    def test_describe(self):
        """describe() shows the recursive plan tree"""
        x = np.zeros(12, dtype=np.complex128)
        with radixplan.build_plan(12, x, x.copy()) as plan:
            text = plan.describe()
        lines = text.splitlines()
        self.assertEqual(lines[0], "mixed-radix(12 = 6 x 2, forward)")
        self.assertEqual(lines[1], "  mixed-radix(6 = 3 x 2, forward)")
        self.assertEqual(lines[2], "    butterfly(3, forward)")
        self.assertIn("  butterfly(2, forward)", lines)

    def test_trace_logging(self):
        """Execution trace goes to the injected logger when enabled"""
        trace_logger = logging.getLogger("radixplan.tests.trace")
        x = self._random(6)
        y = np.zeros(6, dtype=np.complex128)
        with MixedRadixPlan(6, x, y, radixplan.FORWARD, options={'trace': True},
                            logger=trace_logger) as plan:
            with self.assertLogs(trace_logger, level='DEBUG') as logs:
                plan.execute()
        messages = "\n".join(logs.output)
        self.assertIn("computing 2 DFTs of size 3", messages)
        self.assertIn("computing 3 DFTs of size 2", messages)


if __name__ == "__main__":
    unittest.main()
