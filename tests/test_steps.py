"""Each stage's idempotency predicate and command sequence, with host tools stubbed."""

import pytest

from gpuhost_bootstrap.errors import DownloadError, PackageInstallError, UnsupportedHostError
from gpuhost_bootstrap.lib.osrelease import OSRelease
from gpuhost_bootstrap.steps import (
    BasePackagesStep,
    ContainerRuntimeStep,
    CudaToolkitStep,
    DockerGroupStep,
    GpuDriverStep,
    PythonEnvStep,
)
from gpuhost_bootstrap.steps import (
    step_10_base_packages,
    step_20_gpu_driver,
    step_30_cuda_toolkit,
    step_40_container_runtime,
    step_50_docker_group,
    step_60_python_env,
)


class Calls:
    def __init__(self):
        self.log = []

    def stub(self, name, result=None):
        def _fn(*args, **kwargs):
            self.log.append((name, args))
            return result

        return _fn

    @property
    def names(self):
        return [n for n, _ in self.log]


@pytest.fixture
def calls():
    return Calls()


def test_catalogue_order_and_reboot_flags():
    steps = [BasePackagesStep(), GpuDriverStep(), CudaToolkitStep(), ContainerRuntimeStep(), DockerGroupStep(), PythonEnvStep()]
    assert [s.step_id for s in steps] == sorted(s.step_id for s in steps)
    assert [s.reboot_required for s in steps] == [False, True, False, False, False, False]


# 10 base packages


def test_base_packages(ctx, calls, monkeypatch):
    monkeypatch.setattr(step_10_base_packages, "missing_packages", lambda pkgs: ["dkms"])
    for name in ("apt_update", "apt_upgrade", "apt_install"):
        monkeypatch.setattr(step_10_base_packages, name, calls.stub(name))
    step = BasePackagesStep()

    assert not step.is_satisfied(ctx)
    step.run(ctx)

    assert calls.names == ["apt_update", "apt_upgrade", "apt_install"]
    assert calls.log[2][1][0] == ctx.config.base_packages


def test_base_packages_satisfied(ctx, monkeypatch):
    monkeypatch.setattr(step_10_base_packages, "missing_packages", lambda pkgs: [])
    assert BasePackagesStep().is_satisfied(ctx)


# 20 gpu driver


def test_gpu_driver_runs_autoinstall(ctx, calls, recorder, monkeypatch):
    monkeypatch.setattr(step_20_gpu_driver, "nvidia_driver_loaded", lambda: False)
    monkeypatch.setattr(step_20_gpu_driver, "apt_update", calls.stub("apt_update"))
    monkeypatch.setattr(step_20_gpu_driver, "apt_install", calls.stub("apt_install"))
    monkeypatch.setattr(step_20_gpu_driver, "run_cmd", recorder)
    step = GpuDriverStep()

    assert not step.is_satisfied(ctx)
    step.run(ctx)

    assert calls.log[1] == ("apt_install", (["ubuntu-drivers-common"],))
    assert recorder.calls == [["ubuntu-drivers", "autoinstall"]]
    assert recorder.kwargs[0]["error_cls"] is PackageInstallError


def test_gpu_driver_satisfied_when_module_loaded(ctx, monkeypatch):
    monkeypatch.setattr(step_20_gpu_driver, "nvidia_driver_loaded", lambda: True)
    assert GpuDriverStep().is_satisfied(ctx)


# 30 cuda toolkit


def _stub_cuda(monkeypatch, calls, recorder, installed):
    monkeypatch.setattr(step_30_cuda_toolkit, "dpkg_is_installed", lambda p: p in installed)
    monkeypatch.setattr(step_30_cuda_toolkit, "fetch_to_file", lambda url, dest, **kw: calls.log.append(("fetch_to_file", (url,))) or dest)
    for name in ("dpkg_install", "apt_update", "apt_install"):
        monkeypatch.setattr(step_30_cuda_toolkit, name, calls.stub(name))
    monkeypatch.setattr(step_30_cuda_toolkit, "run_cmd", recorder)


def test_cuda_toolkit_install(ctx, calls, recorder, monkeypatch):
    _stub_cuda(monkeypatch, calls, recorder, installed=set())
    step = CudaToolkitStep()

    assert not step.is_satisfied(ctx)
    step.run(ctx)

    assert calls.names == ["fetch_to_file", "dpkg_install", "apt_update", "apt_install"]
    assert calls.log[0][1][0] == (
        "https://developer.download.nvidia.com/compute/cuda/repos/ubuntu2404/x86_64/cuda-keyring_1.1-1_all.deb"
    )
    assert calls.log[3][1][0] == ["cuda-toolkit-12-6"]

    bashrc = open(ctx.bashrc, encoding="utf-8").read()
    assert "export PATH=/usr/local/cuda-12.6/bin" in bashrc
    assert ctx.env["PATH"].startswith("/usr/local/cuda-12.6/bin")
    assert ctx.env["LD_LIBRARY_PATH"].startswith("/usr/local/cuda-12.6/lib64")


def test_cuda_toolkit_skips_installed_keyring(ctx, calls, recorder, monkeypatch):
    _stub_cuda(monkeypatch, calls, recorder, installed={"cuda-keyring"})

    CudaToolkitStep().run(ctx)

    assert "fetch_to_file" not in calls.names
    assert "dpkg_install" not in calls.names


def test_cuda_toolkit_rerun_does_not_duplicate_rc_block(ctx, calls, recorder, monkeypatch):
    _stub_cuda(monkeypatch, calls, recorder, installed={"cuda-keyring"})
    CudaToolkitStep().run(ctx)
    CudaToolkitStep().run(ctx)

    assert open(ctx.bashrc, encoding="utf-8").read().count("# CUDA 12.6") == 1


def test_cuda_toolkit_satisfied_needs_package_and_registration(ctx, calls, recorder, monkeypatch):
    _stub_cuda(monkeypatch, calls, recorder, installed={"cuda-toolkit-12-6"})
    step = CudaToolkitStep()
    assert not step.is_satisfied(ctx)

    with open(ctx.bashrc, "w", encoding="utf-8") as f:
        f.write("export PATH=/usr/local/cuda-12.6/bin:$PATH\n")
    assert step.is_satisfied(ctx)


def test_cuda_keyring_download_failure(ctx, calls, recorder, monkeypatch):
    _stub_cuda(monkeypatch, calls, recorder, installed=set())

    def fail(url, dest, **kw):
        raise DownloadError(url, "curl: (6) Could not resolve host")

    monkeypatch.setattr(step_30_cuda_toolkit, "fetch_to_file", fail)

    with pytest.raises(DownloadError):
        CudaToolkitStep().run(ctx)
    assert "apt_install" not in calls.names


# 40 container runtime


def _stub_runtime(monkeypatch, calls, recorder):
    m = step_40_container_runtime
    for name in ("apt_remove", "apt_install", "apt_update", "install_dearmored_key", "write_source_list", "restart_service"):
        monkeypatch.setattr(m, name, calls.stub(name))
    monkeypatch.setattr(m, "fetch", calls.stub("fetch", "deb https://nvidia.github.io/libnvidia-container/stable/deb/$(ARCH) /\n"))
    monkeypatch.setattr(m, "run_cmd", recorder)


def test_container_runtime_install(ctx, calls, recorder, monkeypatch):
    _stub_runtime(monkeypatch, calls, recorder)

    ContainerRuntimeStep().run(ctx)

    assert calls.names == [
        "apt_remove",
        "apt_install",
        "install_dearmored_key",
        "write_source_list",
        "apt_update",
        "apt_install",
        "install_dearmored_key",
        "fetch",
        "write_source_list",
        "apt_update",
        "apt_install",
        "restart_service",
    ]
    docker_key = calls.log[2][1]
    assert docker_key == ("https://download.docker.com/linux/ubuntu/gpg", "/etc/apt/keyrings/docker.gpg")
    docker_source = calls.log[3][1]
    assert docker_source[0] == "docker"
    assert "noble stable" in docker_source[1]
    assert "arch=amd64" in docker_source[1]
    toolkit_source = calls.log[8][1]
    assert "signed-by=/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg" in toolkit_source[1]
    assert calls.log[10][1][0] == ["nvidia-container-toolkit"]
    assert recorder.calls == [
        ["nvidia-ctk", "runtime", "configure", "--runtime=docker"],
        ["docker", "run", "--rm", "hello-world"],
    ]


def test_container_runtime_failure_propagates(ctx, calls, recorder, monkeypatch):
    _stub_runtime(monkeypatch, calls, recorder)

    def fail(packages, **kw):
        raise PackageInstallError(["apt-get", "install", "-y", *packages], 100, "", "E: broken")

    monkeypatch.setattr(step_40_container_runtime, "apt_install", fail)

    with pytest.raises(PackageInstallError):
        ContainerRuntimeStep().run(ctx)
    assert "restart_service" not in calls.names


def test_container_runtime_satisfied(ctx, monkeypatch):
    m = step_40_container_runtime
    monkeypatch.setattr(m, "missing_packages", lambda pkgs: [])
    monkeypatch.setattr(m, "docker_has_runtime", lambda runtime: runtime == "nvidia")
    assert ContainerRuntimeStep().is_satisfied(ctx)

    monkeypatch.setattr(m, "docker_has_runtime", lambda runtime: False)
    assert not ContainerRuntimeStep().is_satisfied(ctx)


# 50 docker group


def test_docker_group(ctx, calls, monkeypatch):
    m = step_50_docker_group
    monkeypatch.setattr(m, "is_member", lambda user, group: False)
    monkeypatch.setattr(m, "ensure_group", calls.stub("ensure_group"))
    monkeypatch.setattr(m, "add_to_group", calls.stub("add_to_group"))
    step = DockerGroupStep()

    assert not step.is_satisfied(ctx)
    step.run(ctx)

    assert calls.log == [("ensure_group", ("docker",)), ("add_to_group", (ctx.user, "docker"))]


def test_docker_group_satisfied(ctx, monkeypatch):
    monkeypatch.setattr(step_50_docker_group, "is_member", lambda user, group: True)
    assert DockerGroupStep().is_satisfied(ctx)


# 60 python env


def _stub_pyenv(monkeypatch, calls, exists):
    m = step_60_python_env
    monkeypatch.setattr(m, "venv_exists", lambda path: exists)
    for name in ("create_venv", "pip_install", "report_versions"):
        monkeypatch.setattr(m, name, calls.stub(name))


def test_python_env_creates_and_installs(ctx, calls, monkeypatch):
    _stub_pyenv(monkeypatch, calls, exists=False)

    PythonEnvStep().run(ctx)

    assert calls.names == ["create_venv", "pip_install", "pip_install", "report_versions"]
    assert calls.log[0][1][0] == f"{ctx.user.home}/pytorch_venv_cu126"
    assert calls.log[1][1][1] == ["pip"]
    assert calls.log[2][1][1] == ["torch", "torchvision", "torchaudio"]


def test_python_env_reuses_existing_venv(ctx, calls, monkeypatch):
    _stub_pyenv(monkeypatch, calls, exists=True)

    PythonEnvStep().run(ctx)

    assert "create_venv" not in calls.names


def test_python_env_satisfied_when_modules_import(ctx, monkeypatch):
    seen = {}

    def can_import(path, modules, **kw):
        seen["args"] = (path, modules)
        return True

    monkeypatch.setattr(step_60_python_env, "can_import", can_import)

    assert PythonEnvStep().is_satisfied(ctx)
    assert seen["args"] == (ctx.venv_path, ["torch"])


def test_container_runtime_needs_codename(ctx, calls, recorder, monkeypatch):
    _stub_runtime(monkeypatch, calls, recorder)
    ctx.os_release = OSRelease(id="ubuntu", version_id="24.04", codename="")

    with pytest.raises(UnsupportedHostError, match="VERSION_CODENAME"):
        ContainerRuntimeStep().run(ctx)
    assert calls.log == []
