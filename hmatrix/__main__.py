"""Self-check runner for paired host/device matrices.

Builds matrices on the chosen device, drives them through fill, transfer and
compare, and prints the measured differences next to the expected ones. Use it
to confirm a machine is fit for HGEMM benchmarking before running kernels.

Run with: python -m hmatrix
"""

import argparse
import logging
import sys
from typing import List, Tuple

import torch

from .common import MatrixCheckError, default_device, default_log_level
from .paired_matrix import PairedMatrixBuffer

logger = logging.getLogger("hmatrix")


def get_memory_stats(device: torch.device) -> Tuple[float, float]:
    """Get current CUDA memory statistics.

    Returns:
        Tuple of (allocated_mb, reserved_mb), zeros for a non CUDA device
    """
    if device.type != "cuda":
        return 0.0, 0.0
    allocated = torch.cuda.memory_allocated(device) / (1024 ** 2)
    reserved = torch.cuda.memory_reserved(device) / (1024 ** 2)
    return allocated, reserved


def run_checks(
    rows: int, cols: int, device: torch.device, seed: int = None
) -> List[Tuple[str, float, float, float]]:
    """Run the fixture checks and return one result row per check.

    Args:
        rows: Rows of the matrices under test
        cols: Columns of the matrices under test
        device: Device holding the device buffers
        seed: Seed for the random fills

    Returns:
        List of (check_name, expected, max_diff, avg_diff)
    """
    results = []

    with PairedMatrixBuffer(rows, cols, "Matrix A", device=device, seed=seed) as a, \
            PairedMatrixBuffer(rows, cols, "Matrix B", device=device, seed=seed) as b:
        a.random(0.0, 0.0)
        b.zeros()
        results.append(("zero vs zeros()", 0.0, *a.check_value(b)))

        a.random(1.0, 1.0)
        b.random(2.0, 2.0)
        results.append(("ones vs twos", 1.0, *a.check_value(b)))

        a.random()
        b.tear_up(a)
        b.move_to_host()
        results.append(("tear_up round trip", 0.0, *b.check_value(a)))

        snapshot = a.data.clone()
        a.move_to_host()
        max_diff = (a.data.float() - snapshot.float()).abs().max().item()
        results.append(("move_to_host no-op", 0.0, max_diff, max_diff))

    return results


def print_results(results, rows: int, cols: int, device: torch.device):
    print(f"\n{'='*80}")
    print(f"Paired Matrix Self-Check")
    print(f"{'='*80}")
    print(f"Configuration:")
    print(f"  Matrix Size: {rows}x{cols}")
    print(f"  Device: {device}")
    if device.type == "cuda":
        print(f"  Device Name: {torch.cuda.get_device_name(device)}")
    allocated, reserved = get_memory_stats(device)
    print(f"  Allocated: {allocated:.2f} MB, Reserved: {reserved:.2f} MB")
    print(f"{'='*80}\n")

    print(f"{'Check':<24} {'Expected':<12} {'Max Diff':<12} {'Avg Diff':<12} {'Status':<6}")
    print(f"{'-'*80}")
    failed = 0
    for check_name, expected, max_diff, avg_diff in results:
        ok = abs(max_diff - expected) < 1e-3 and abs(avg_diff - expected) < 1e-3
        failed += not ok
        print(
            f"{check_name:<24} {expected:<12.6f} {max_diff:<12.6f} {avg_diff:<12.6f} "
            f"{'OK' if ok else 'FAIL':<6}"
        )
    print(f"{'-'*80}\n")
    return failed


def main():
    parser = argparse.ArgumentParser(
        description="Self-check for paired host/device fp16 matrices"
    )
    parser.add_argument("--rows", type=int, default=256, help="Rows of the test matrices")
    parser.add_argument("--cols", type=int, default=256, help="Columns of the test matrices")
    parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Device for the device buffers (default: $HMATRIX_DEVICE or cuda)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for random fills")
    parser.add_argument(
        "--log-level",
        type=str,
        default=default_log_level(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: $HMATRIX_LOG_LEVEL or INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    device = torch.device(args.device) if args.device else default_device()

    try:
        results = run_checks(args.rows, args.cols, device, args.seed)
    except MatrixCheckError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    failed = print_results(results, args.rows, args.cols, device)
    if failed:
        logger.error("%d check(s) failed", failed)
        sys.exit(1)


if __name__ == "__main__":
    main()
