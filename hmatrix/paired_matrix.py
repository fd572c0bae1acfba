"""Half-precision matrix held in host memory and device memory at once.

A :class:`PairedMatrixBuffer` owns two fp16 buffers of the same shape, one CPU
tensor and one tensor on the accelerator. The two copies are never kept in
sync automatically: after a kernel writes into :attr:`gpu_data` the host copy
is stale until :meth:`move_to_host` is called, and after the host copy is
edited the device copy is stale until :meth:`push_to_device` is called.

Typical HGEMM benchmark round::

    a = PairedMatrixBuffer(m, k, "Matrix A")
    b = PairedMatrixBuffer(k, n, "Matrix B")
    base = PairedMatrixBuffer(m, n, "Matrix C base")
    c = PairedMatrixBuffer(m, n, "Matrix C")

    base.zeros()
    reference_hgemm(a.gpu_data, b.gpu_data, base.gpu_data)
    base.move_to_host()

    c.zeros()
    candidate_hgemm(a.gpu_data, b.gpu_data, c.gpu_data)
    c.move_to_host()
    max_diff, avg_diff = c.check_value(base)
"""

import logging
from typing import Optional, Tuple, Union

import torch

from .common import (
    HALF,
    WIDE,
    check,
    check_eq,
    check_gt,
    check_int,
    check_not_none,
    default_device,
    device_call,
    synchronize,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN = -2.0
DEFAULT_MAX = 2.0


class PairedMatrixBuffer:
    """Fixed-shape fp16 matrix duplicated across host and device memory.

    Args:
        row: Number of rows, must be positive
        col: Number of columns, must be positive
        name: Label used in log lines only
        min_value: Lower bound of the initial uniform fill
        max_value: Upper bound (exclusive) of the initial uniform fill
        device: Accelerator device, ``HMATRIX_DEVICE`` or ``cuda`` when None
        seed: Seed for the fill generator, nondeterministic when None
        pin_memory: Allocate the host buffer in page-locked memory

    Raises:
        MatrixCheckError: If the shape or range is invalid or the device
            cannot satisfy an allocation or copy

    Example:
        >>> a = PairedMatrixBuffer(256, 128, "Matrix A")
        >>> a.gpu_data.shape
        torch.Size([256, 128])
    """

    def __init__(
        self,
        row: int,
        col: int,
        name: str = "Matrix",
        min_value: float = DEFAULT_MIN,
        max_value: float = DEFAULT_MAX,
        device: Optional[Union[str, torch.device]] = None,
        seed: Optional[int] = None,
        pin_memory: bool = False,
    ):
        # set first so free() works on a half built object
        self._data = None
        self._gpu_data = None

        check_int(row, "row")
        check_int(col, "col")
        check_gt(row, 0, "row")
        check_gt(col, 0, "col")
        self._row = row
        self._col = col
        self._name = name
        # the threshold of the random matrix affects the difference of the hgemm results
        self._min_value = float(min_value)
        self._max_value = float(max_value)
        check(
            self._min_value <= self._max_value,
            f"min_value <= max_value failed, got [{self._min_value}, {self._max_value})",
        )

        self._elem_num = self._row * self._col
        check_gt(self._elem_num, 0, "elem_num")

        self._device = torch.device(device) if device is not None else default_device()
        if self._device.type == "cuda":
            check(torch.cuda.is_available(), "CUDA device requested but CUDA is not available")
        check(
            not pin_memory or self._device.type == "cuda",
            "pin_memory is only supported for a CUDA device",
        )

        self._generator = torch.Generator()
        if seed is None:
            self._generator.seed()
        else:
            self._generator.manual_seed(seed)

        self._max_diff = None
        self._avg_diff = None

        with device_call(f"{self._name}: allocate host buffer"):
            self._data = torch.empty(
                (self._row, self._col), dtype=HALF, pin_memory=pin_memory
            )
        with device_call(f"{self._name}: allocate device buffer"):
            self._gpu_data = torch.empty(
                (self._row, self._col), dtype=HALF, device=self._device
            )

        self._fill_host(self._min_value, self._max_value)
        self.push_to_device()

        logger.info(
            "%s: %d * %d, cpu: %#x, gpu: %#x",
            self._name,
            self._row,
            self._col,
            self._data.data_ptr(),
            self._gpu_data.data_ptr(),
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.free()
        return False

    def __del__(self):
        # no logging here, module globals may already be gone at shutdown
        self._data = None
        self._gpu_data = None

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} owns its buffers and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} owns its buffers and cannot be copied")

    def __repr__(self):
        return (
            f"{type(self).__name__}(name={self._name!r}, row={self._row}, "
            f"col={self._col}, device={self._device})"
        )

    @property
    def row(self) -> int:
        return self._row

    @property
    def col(self) -> int:
        return self._col

    @property
    def elem_num(self) -> int:
        return self._elem_num

    @property
    def name(self) -> str:
        return self._name

    @property
    def device(self) -> torch.device:
        return self._device

    @property
    def min_value(self) -> float:
        return self._min_value

    @property
    def max_value(self) -> float:
        return self._max_value

    @property
    def data(self) -> torch.Tensor:
        """Host buffer, a contiguous ``(row, col)`` fp16 CPU tensor."""
        check_not_none(self._data, f"{self._name} host buffer")
        return self._data

    @property
    def gpu_data(self) -> torch.Tensor:
        """Device buffer, a contiguous ``(row, col)`` fp16 tensor on :attr:`device`.

        Kernels may write into it but must not resize or replace it.
        """
        check_not_none(self._gpu_data, f"{self._name} device buffer")
        return self._gpu_data

    @property
    def max_diff(self) -> Optional[float]:
        """Max absolute difference of the last :meth:`check_value`, None before."""
        return self._max_diff

    @property
    def avg_diff(self) -> Optional[float]:
        """Mean absolute difference of the last :meth:`check_value`, None before."""
        return self._avg_diff

    def _fill_host(self, min_value: float, max_value: float) -> None:
        check(
            min_value <= max_value,
            f"min_value <= max_value failed, got [{min_value}, {max_value})",
        )
        with device_call(f"{self._name}: fill host buffer"):
            draws = torch.empty((self._row, self._col), dtype=torch.float32)
            draws.uniform_(min_value, max_value, generator=self._generator)
            self.data.copy_(draws)

    def zeros(self) -> None:
        """Zero the device buffer on the device, then pull it to the host."""
        with device_call(f"{self._name}: zero device buffer"):
            self.gpu_data.zero_()
        self.move_to_host()

    def random(self, min_value: float = DEFAULT_MIN, max_value: float = DEFAULT_MAX) -> None:
        """Refill both buffers with uniform draws in ``[min_value, max_value)``.

        The draws are made in fp32 and rounded to fp16, so a value may land
        on ``max_value``. The range given here is not stored.
        """
        self._fill_host(float(min_value), float(max_value))
        self.push_to_device()

    def tear_up(self, base: "PairedMatrixBuffer") -> None:
        """Copy the host buffer of ``base`` into this object's device buffer.

        This object's host buffer is left as it was, so the two copies differ
        until :meth:`move_to_host` is called.
        """
        check_not_none(base, "base")
        check_eq(self._row, base.row, "row")
        check_eq(self._col, base.col, "col")

        with device_call(f"{self._name}: copy {base.name} host to device"):
            self.gpu_data.copy_(base.data)
            synchronize(self._device)

    def push_to_device(self) -> None:
        """Synchronously copy the host buffer over the device buffer."""
        with device_call(f"{self._name}: copy host to device"):
            self.gpu_data.copy_(self.data)
            synchronize(self._device)

    def move_to_host(self) -> None:
        """Synchronously copy the device buffer over the host buffer."""
        with device_call(f"{self._name}: copy device to host"):
            self.data.copy_(self.gpu_data)
            synchronize(self._device)

    def check_value(self, base: "PairedMatrixBuffer") -> Tuple[float, float]:
        """Compare the host buffer against the host buffer of ``base``.

        Only host memory is read; call :meth:`move_to_host` first on any
        matrix whose device buffer was written by a kernel.

        Args:
            base: Matrix of the same shape to compare against

        Returns:
            Tuple of (max_diff, avg_diff), the max and mean absolute
            element difference, also kept on :attr:`max_diff` / :attr:`avg_diff`
        """
        check_not_none(base, "base")
        check_eq(self._row, base.row, "row")
        check_eq(self._col, base.col, "col")

        diff = (self.data.to(WIDE) - base.data.to(WIDE)).abs()
        self._max_diff = diff.max().item()
        self._avg_diff = diff.sum().item() / self._elem_num

        logger.info("Max diff: %f, avg diff: %f", self._max_diff, self._avg_diff)
        return self._max_diff, self._avg_diff

    def free(self) -> None:
        """Release both buffers. Safe to call more than once."""
        if getattr(self, "_gpu_data", None) is not None:
            logger.debug("%s: release host and device buffers", self._name)
        self._data = None
        self._gpu_data = None
