from .step_10_base_packages import BasePackagesStep
from .step_20_gpu_driver import GpuDriverStep
from .step_30_cuda_toolkit import CudaToolkitStep
from .step_40_container_runtime import ContainerRuntimeStep
from .step_50_docker_group import DockerGroupStep
from .step_60_python_env import PythonEnvStep

__all__ = [
    "BasePackagesStep",
    "GpuDriverStep",
    "CudaToolkitStep",
    "ContainerRuntimeStep",
    "DockerGroupStep",
    "PythonEnvStep",
]
