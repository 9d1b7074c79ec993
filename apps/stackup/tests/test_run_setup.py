from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

import stackup.orchestrator as orchestrator
from stackup.inputs import InputOverrides
from stackup.orchestrator import REPORT_RELATIVE_PATH, RunOptions, RunState, run_setup
from stackup.testing import DEPLOYMENT_URL, LOCAL_ANON, PROJECT_REF, REMOTE_ANON, REMOTE_SERVICE, build_toolchain
from stage_runner.process import CommandResult
from stage_runner.testing import ScriptedRunner, result

PASSWORD = "correct-horse-battery"


def _no_prompt(message: str) -> str:
    raise AssertionError(f"unexpected prompt: {message!r}")


def _answers(values: list[str]):
    queue = list(values)

    def _prompt(message: str) -> str:
        if not queue:
            raise AssertionError(f"unexpected prompt: {message!r}")
        return queue.pop(0)

    return _prompt


def _overrides(**kwargs: object) -> InputOverrides:
    values: dict[str, object] = {
        "project_name": "demo-app",
        "db_password": PASSWORD,
        "org_reference": "",
        "target_repo": "octocat/demo-app",
        "deploy": True,
        "assume_yes": True,
    }
    values.update(kwargs)
    return InputOverrides(**values)  # type: ignore[arg-type]


def _run(
    workdir: Path,
    runner: ScriptedRunner,
    *,
    home: Path,
    dry_run: bool = False,
    local_only: bool = False,
    overrides: InputOverrides | None = None,
    prompt=_no_prompt,
    secret_prompt=_no_prompt,
    config_path: Path | None = None,
):
    out = io.StringIO()
    outcome = run_setup(
        RunOptions(
            workdir=workdir,
            dry_run=dry_run,
            local_only=local_only,
            config_path=config_path,
            overrides=overrides if overrides is not None else _overrides(),
        ),
        runner=runner,
        prompt=prompt,
        secret_prompt=secret_prompt,
        home=home,
        sleep=lambda _s: None,
        out=out,
    )
    return outcome, out.getvalue()


def test_full_run_creates_project_and_report(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    outcome, text = _run(workdir, toolchain, home=home_dir)

    assert outcome.exit_code == 0
    assert outcome.state is RunState.COMPLETE
    project_dir = workdir / "demo-app"

    report_path = project_dir / REPORT_RELATIVE_PATH
    assert outcome.report_path == report_path
    report_text = report_path.read_text(encoding="utf-8")
    payload = json.loads(report_text)
    assert payload["status"] == "success"
    assert payload["failed_stage"] is None
    assert "install-dependencies" in payload["completed_stages"]
    assert "deploy" in payload["completed_stages"]
    for secret in (PASSWORD, REMOTE_SERVICE, REMOTE_ANON, LOCAL_ANON):
        assert secret not in report_text

    web_env = (project_dir / "apps" / "web" / ".env.local").read_text(encoding="utf-8")
    assert f"NEXT_PUBLIC_SUPABASE_URL=https://{PROJECT_REF}.supabase.co" in web_env
    credentials = (project_dir / ".supabase-credentials.env").read_text(encoding="utf-8")
    assert f"SUPABASE_DB_PASSWORD={PASSWORD}" in credentials
    gitignore = (project_dir / ".gitignore").read_text(encoding="utf-8").splitlines()
    assert ".supabase-credentials.env" in gitignore
    assert ".stackup/" in gitignore
    assert f"DEPLOYMENT_URL={DEPLOYMENT_URL}" in (project_dir / ".vercel-deployment-info").read_text(
        encoding="utf-8"
    )

    assert [c.argv[3] for c in toolchain.calls if c.argv[:3] == ["gh", "secret", "set"]] == [
        "SUPABASE_PROJECT_REF",
        "SUPABASE_DB_URL_PRODUCTION",
        "SUPABASE_ACCESS_TOKEN",
    ]
    assert toolchain.commands("git", "push", "-u", "origin", "main")
    workflow_commit = ["git", "commit", "--no-gpg-sign", "-m", "Add GitHub Actions workflow for Supabase migrations"]
    assert toolchain.commands(*workflow_commit)
    assert toolchain.commands("supabase", "db", "push", "--local")
    assert toolchain.commands("pnpm", "--filter", "web", "add")

    assert "Setup complete." in text
    assert "cd demo-app" in text
    assert f"Visit your production site: {DEPLOYMENT_URL}" in text
    assert PASSWORD not in text
    assert PASSWORD not in capsys.readouterr().err


def test_local_only_run_skips_remote_stages(workdir: Path, home_dir: Path) -> None:
    runner = build_toolchain(available={"node", "pnpm", "docker", "supabase", "git"})

    outcome, text = _run(
        workdir,
        runner,
        home=home_dir,
        local_only=True,
        overrides=InputOverrides(project_name="demo-app", db_password=PASSWORD, assume_yes=True),
    )

    assert outcome.exit_code == 0
    assert outcome.report is not None
    skipped = {s.name: s.reason for s in outcome.report.skipped_stages}
    assert skipped["provision-backend"] == "local-only mode"
    assert skipped["link-backend"] == "no remote project"
    assert skipped["push-repository"] == "no GitHub repository given"
    assert skipped["deploy"] == "local-only mode"
    assert runner.commands("supabase", "projects") == []
    assert runner.commands("gh") == []
    assert runner.commands("vercel") == []

    web_env = (workdir / "demo-app" / "apps" / "web" / ".env.local").read_text(encoding="utf-8")
    assert "NEXT_PUBLIC_SUPABASE_URL=http://127.0.0.1:54321" in web_env
    assert f"NEXT_PUBLIC_SUPABASE_ANON_KEY={LOCAL_ANON}" in web_env
    assert "Mode: local only" in text


def test_required_stage_failure_stops_and_lists_created_resources(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    toolchain.respond("pnpm", "install", returncode=1, stderr="ERR_PNPM_FETCH_404 not found")

    outcome, _text = _run(workdir, toolchain, home=home_dir)

    assert outcome.exit_code == 1
    assert outcome.state is RunState.FAILED
    assert toolchain.commands("git", "commit") == []
    assert toolchain.commands("vercel") == []

    payload = json.loads((workdir / "demo-app" / REPORT_RELATIVE_PATH).read_text(encoding="utf-8"))
    assert payload["status"] == "partial_failure"
    assert payload["failed_stage"] == "install-dependencies"
    assert payload["error"]["code"] == "external_tool_failed"
    assert "commit" not in payload["completed_stages"]

    err = capsys.readouterr().err
    assert "ERROR: Dependency installation failed" in err
    assert "ERR_PNPM_FETCH_404" in err
    assert f"to remove: supabase projects delete {PROJECT_REF}" in err
    assert "supabase stop --no-backup" in err
    assert "Setup report:" in err


def test_best_effort_failure_does_not_fail_the_run(workdir: Path, toolchain: ScriptedRunner, home_dir: Path) -> None:
    toolchain.respond("git", "push", returncode=1, stderr="remote: Repository not found.")

    outcome, text = _run(workdir, toolchain, home=home_dir)

    assert outcome.exit_code == 0
    assert outcome.report is not None
    assert any(w.startswith("push-repository:") for w in outcome.report.warnings)
    assert "deploy" in outcome.report.completed_stages
    assert "Skipped or degraded:" in text


def test_missing_prerequisites_stop_before_prompting(
    workdir: Path, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    runner = build_toolchain(available={"node", "pnpm", "git"})

    outcome, text = _run(workdir, runner, home=home_dir, overrides=InputOverrides())

    assert outcome.exit_code == 1
    assert outcome.state is RunState.FAILED
    assert "[missing] docker" in text
    assert "[missing] vercel" in text
    assert list(workdir.iterdir()) == []
    err = capsys.readouterr().err
    assert "code: prerequisite_missing" in err
    assert "Nothing was created." in err


def test_declined_confirmation_creates_nothing(workdir: Path, toolchain: ScriptedRunner, home_dir: Path) -> None:
    outcome, text = _run(
        workdir,
        toolchain,
        home=home_dir,
        overrides=_overrides(assume_yes=False),
        prompt=lambda _message: "n",
    )

    assert outcome.exit_code == 0
    assert outcome.state is RunState.CANCELLED
    assert "Nothing was created." in text
    assert list(workdir.iterdir()) == []
    assert toolchain.commands("pnpm", "create") == []


def test_existing_project_directory_is_a_conflict(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (workdir / "demo-app").mkdir()

    outcome, _text = _run(workdir, toolchain, home=home_dir)

    assert outcome.exit_code == 1
    assert toolchain.commands("pnpm", "create") == []
    err = capsys.readouterr().err
    assert "code: resource_conflict" in err
    assert "rm -rf" in err


def test_dry_run_prints_plan_without_running_stages(workdir: Path, home_dir: Path) -> None:
    runner = build_toolchain(available={"node", "pnpm", "git"})

    outcome, text = _run(workdir, runner, home=home_dir, dry_run=True)

    assert outcome.exit_code == 0
    assert outcome.state is RunState.COMPLETE
    assert "Planned stages:" in text
    assert "provision-backend [required]" in text
    assert "deploy [best-effort]" in text
    assert "Dry run: no commands were executed." in text
    assert runner.commands("pnpm", "create") == []
    assert runner.commands("supabase") == []
    assert list(workdir.iterdir()) == []


def test_invalid_config_fails_before_checks(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    outcome, _text = _run(workdir, toolchain, home=home_dir, config_path=workdir / "missing.yaml")

    assert outcome.exit_code == 1
    assert toolchain.calls == []
    assert "code: config_invalid" in capsys.readouterr().err


def test_interrupt_while_collecting_is_reported(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    def _interrupt(message: str) -> str:
        raise KeyboardInterrupt

    outcome, _text = _run(workdir, toolchain, home=home_dir, overrides=InputOverrides(), prompt=_interrupt)

    assert outcome.exit_code == 1
    assert outcome.state is RunState.FAILED
    err = capsys.readouterr().err
    assert "Interrupted while collecting" in err
    assert "code: interrupted" in err


def test_prompted_run_with_deploy_declined_completes(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    outcome, text = _run(
        workdir,
        toolchain,
        home=home_dir,
        overrides=InputOverrides(),
        prompt=_answers(["demo-app", "", "", "n", "y"]),
        secret_prompt=_answers(["abcdefgh12", "abcdefgh12"]),
    )

    assert outcome.exit_code == 0
    assert outcome.state is RunState.COMPLETE
    assert outcome.inputs is not None
    assert outcome.inputs.db_password == "abcdefgh12"
    assert outcome.inputs.deploy is False
    assert outcome.report is not None
    skipped = {s.name: s.reason for s in outcome.report.skipped_stages}
    assert skipped["deploy"] == "deployment declined"
    assert skipped["push-repository"] == "no GitHub repository given"
    assert "--org-id" not in toolchain.commands("supabase", "projects", "create")[0]
    assert toolchain.commands("vercel") == []
    assert not (workdir / "demo-app" / ".vercel-deployment-info").exists()

    assert "Local structure:" in text
    assert "Setup complete." in text
    assert "Visit your production site" not in text
    assert "vercel.app" not in text
    assert "abcdefgh12" not in text
    assert "abcdefgh12" not in capsys.readouterr().err


def test_scaffolder_without_package_json_fails_cleanly(
    workdir: Path, toolchain: ScriptedRunner, home_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    def _scaffold_without_manifest(argv: list[str], cwd: Path) -> CommandResult:
        (cwd / argv[3] / "apps").mkdir(parents=True)
        return result(argv=argv)

    toolchain.on("pnpm", "create", "turbo@latest", responses=[_scaffold_without_manifest])

    outcome, _text = _run(workdir, toolchain, home=home_dir)

    assert outcome.exit_code == 1
    assert outcome.state is RunState.FAILED
    assert toolchain.commands("supabase") == []
    payload = json.loads((workdir / "demo-app" / REPORT_RELATIVE_PATH).read_text(encoding="utf-8"))
    assert payload["failed_stage"] == "create-monorepo"
    assert payload["error"]["code"] == "extraction_failed"
    err = capsys.readouterr().err
    assert "Scaffolder did not create" in err
    assert "code: extraction_failed" in err
    assert f"rm -rf {workdir / 'demo-app'}" in err


def test_interrupt_while_reporting_goes_through_failure_handler(
    workdir: Path,
    toolchain: ScriptedRunner,
    home_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def _interrupt(*args: object, **kwargs: object) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(orchestrator, "report_summary", _interrupt)

    outcome, _text = _run(workdir, toolchain, home=home_dir)

    assert outcome.exit_code == 1
    assert outcome.state is RunState.FAILED
    err = capsys.readouterr().err
    assert "Interrupted while running" in err
    assert "code: interrupted" in err
