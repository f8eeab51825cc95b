from __future__ import annotations

import logging

from ..context import RunContext
from ..lib.pyenv import can_import, create_venv, pip_install, report_versions, venv_exists

logger = logging.getLogger(__name__)

TORCH_REPORT = (
    "import torch; "
    "print(f'PyTorch {torch.__version__}, CUDA available? {torch.cuda.is_available()}, "
    "CUDA {torch.version.cuda}, GPUs {torch.cuda.device_count()}')"
)


class PythonEnvStep:
    step_id = "60_python_env"
    label = "Create isolated Python environment with numeric/ML libraries"
    reboot_required = False

    def _modules(self, ctx: RunContext) -> list[str]:
        return [str(m) for m in ctx.config.python_env.get("verify_modules") or []]

    def is_satisfied(self, ctx: RunContext) -> bool:
        return can_import(ctx.venv_path, self._modules(ctx), prefix=ctx.user_prefix, env=ctx.env)

    def run(self, ctx: RunContext) -> None:
        penv = ctx.config.python_env
        path = ctx.venv_path
        prefix = ctx.user_prefix

        if venv_exists(path):
            logger.info("Reusing virtual environment at %s", path)
        else:
            create_venv(path, interpreter=str(penv.get("interpreter") or "python3"), prefix=prefix, dry_run=ctx.dry_run)

        pip_install(path, ["pip"], upgrade=True, prefix=prefix, env=ctx.env, dry_run=ctx.dry_run)
        pip_install(
            path,
            [str(p) for p in penv.get("packages") or []],
            index_url=penv.get("index_url") or None,
            prefix=prefix,
            env=ctx.env,
            dry_run=ctx.dry_run,
        )

        if "torch" in self._modules(ctx):
            report_versions(path, TORCH_REPORT, prefix=prefix, env=ctx.env, dry_run=ctx.dry_run)
        logger.info("Activate with: source %s/bin/activate", path)
