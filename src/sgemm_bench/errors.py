from __future__ import annotations


class HarnessError(RuntimeError):
    """Fatal build/environment failure. Aborts the run; never retried."""


class DriverError(RuntimeError):
    """Raw failure reported by the device layer."""


class NoDeviceAvailable(HarnessError):
    pass


class KernelBuildError(HarnessError):
    def __init__(self, kernel: str, message: str) -> None:
        super().__init__(f"[{kernel}] {message}")
        self.kernel = kernel


class SourceUnavailable(KernelBuildError):
    pass


class CompileError(KernelBuildError):
    def __init__(self, kernel: str, diagnostic: str) -> None:
        super().__init__(kernel, f"failed to compile kernel source:\n{diagnostic}")
        self.diagnostic = diagnostic


class EntryPointNotFound(KernelBuildError):
    pass


class PipelineCreationError(KernelBuildError):
    pass
