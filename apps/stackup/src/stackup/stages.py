from __future__ import annotations

import shutil
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from stackup import envfiles, templates
from stackup.config import SetupConfig
from stackup.inputs import InputSet
from stage_runner.context import ContextView
from stage_runner.errors import ExternalToolFailure, SetupError
from stage_runner.poll import wait_until
from stage_runner.process import CommandRunner
from stage_runner.report import Artifact
from stage_runner.stage import Stage, StageResult
from tool_adapters import git_cli, github_cli, node_tools, supabase_cli, vercel_cli

CREDENTIALS_FILENAME = ".supabase-credentials.env"
DEPLOYMENT_INFO_FILENAME = ".vercel-deployment-info"
WORKFLOW_PATH = Path(".github") / "workflows" / "supabase-migrations.yml"
COMMIT_MESSAGE = "Initial commit: monorepo with Next.js, Supabase and MCP server"
WORKFLOW_COMMIT_MESSAGE = "Add GitHub Actions workflow for Supabase migrations"
WEB_SUPABASE_PACKAGES: tuple[str, ...] = ("@supabase/ssr", "@supabase/supabase-js")

REMOTE_KEYS: tuple[str, ...] = ("project_ref", "api_url", "anon_key", "service_role_key", "db_url")
LOCAL_KEYS: tuple[str, ...] = (
    "local_api_url",
    "local_anon_key",
    "local_service_role_key",
    "local_db_url",
    "local_studio_url",
)


@contextmanager
def _recording(*artifacts: Artifact) -> Iterator[None]:
    """Attach ``artifacts`` to any SetupError raised inside the block."""

    try:
        yield
    except SetupError as exc:
        exc.artifacts.extend(artifacts)
        raise


def _local_path(label: str, path: Path) -> Artifact:
    return Artifact(kind="local_path", label=label, location=str(path), removal_hint=f"rm -rf {path}")


def _credential_file(label: str, path: Path) -> Artifact:
    return Artifact(kind="credential_file", label=label, location=str(path), removal_hint=f"rm {path}")


class SetupStages:
    """
    The concrete provisioning stages for one run.

    Each ``_stage`` method is a stage action: it receives a context view restricted to the keys its
    :class:`Stage` declares and returns a :class:`StageResult`. ``sleep`` and ``now`` are injectable
    so the readiness poll and migration timestamps are testable.
    """

    def __init__(
        self,
        inputs: InputSet,
        config: SetupConfig,
        *,
        runner: CommandRunner,
        workdir: Path,
        local_only: bool,
        home: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.inputs = inputs
        self.config = config
        self.runner = runner
        self.workdir = workdir
        self.local_only = local_only
        self.home = home if home is not None else Path.home()
        self.sleep = sleep
        self.now = now or (lambda: datetime.now(timezone.utc))
        runner.add_secret(inputs.db_password)

    @property
    def project_dir(self) -> Path:
        return self.workdir / self.inputs.project_name

    def build(self) -> list[Stage]:
        return [
            Stage(
                name="create-monorepo",
                action=self.create_monorepo,
                provides=("project_dir",),
                description="Scaffold a Turborepo workspace with pnpm.",
            ),
            Stage(
                name="create-web-app",
                action=self.create_web_app,
                depends_on=("project_dir",),
                provides=("web_dir",),
                description="Replace the template apps with a Next.js app in apps/web.",
            ),
            Stage(
                name="install-ui-components",
                action=self.install_ui_components,
                depends_on=("web_dir",),
                best_effort=True,
                description="Add shadcn/ui components to the web app.",
            ),
            Stage(
                name="provision-backend",
                action=self.provision_backend,
                depends_on=("project_dir",),
                provides=REMOTE_KEYS,
                description="Create (or reuse) the remote Supabase project and fetch its keys.",
            ),
            Stage(
                name="init-local-backend",
                action=self.init_local_backend,
                depends_on=("project_dir",),
                provides=LOCAL_KEYS,
                description="Initialise and start the local Supabase stack.",
            ),
            Stage(
                name="link-backend",
                action=self.link_backend,
                depends_on=("project_dir",),
                optional_inputs=("project_ref",),
                best_effort=True,
                description="Link the local Supabase config to the remote project.",
            ),
            Stage(
                name="write-credentials",
                action=self.write_credentials,
                depends_on=("project_dir", *LOCAL_KEYS),
                optional_inputs=REMOTE_KEYS,
                description=f"Write {CREDENTIALS_FILENAME} and ignore it in git.",
            ),
            Stage(
                name="generate-env-files",
                action=self.generate_env_files,
                depends_on=("project_dir", "local_api_url", "local_anon_key", "local_service_role_key"),
                optional_inputs=("api_url", "anon_key", "service_role_key"),
                description="Write .env.local and .env.example for the web app and MCP server.",
            ),
            Stage(
                name="generate-code-files",
                action=self.generate_code_files,
                depends_on=("project_dir", "web_dir"),
                description="Write the MCP server skeleton and Supabase client helpers.",
            ),
            Stage(
                name="setup-migrations",
                action=self.setup_migrations,
                depends_on=("project_dir", "local_api_url"),
                description="Add the initial database migration and apply it to the local stack.",
            ),
            Stage(
                name="install-dependencies",
                action=self.install_dependencies,
                depends_on=("project_dir",),
                description="Install workspace dependencies with pnpm.",
            ),
            Stage(
                name="commit",
                action=self.commit,
                depends_on=("project_dir",),
                description="Initialise git and commit the generated project.",
            ),
            Stage(
                name="push-repository",
                action=self.push_repository,
                depends_on=("project_dir",),
                best_effort=True,
                description="Push main to the GitHub repository.",
            ),
            Stage(
                name="setup-ci",
                action=self.setup_ci,
                depends_on=("project_dir",),
                optional_inputs=("project_ref", "db_url"),
                best_effort=True,
                description="Add the migrations workflow and its GitHub secrets.",
            ),
            Stage(
                name="deploy",
                action=self.deploy,
                depends_on=("project_dir", "web_dir"),
                optional_inputs=("api_url", "anon_key"),
                provides=("deployment_url",),
                best_effort=True,
                description="Deploy the web app to Vercel production.",
            ),
        ]

    # -- scaffolding -------------------------------------------------------

    def create_monorepo(self, ctx: ContextView) -> StageResult:
        del ctx
        project_dir = self.project_dir
        artifact = _local_path("Monorepo", project_dir)
        try:
            node_tools.create_turbo(self.runner, cwd=self.workdir, name=self.inputs.project_name)
        except SetupError as exc:
            if project_dir.exists():
                exc.artifacts.append(artifact)
            raise

        with _recording(artifact):
            pnpm = node_tools.pnpm_version(self.runner, cwd=project_dir)
            node_tools.set_package_manager(project_dir / "package.json", value=f"pnpm@{pnpm}")
            node_tools.add_workspace_dev_dependency(self.runner, cwd=project_dir, package="turbo@latest")
            envfiles.write_if_missing(project_dir / "pnpm-workspace.yaml", templates.PNPM_WORKSPACE_YAML)

        return StageResult(outputs={"project_dir": str(project_dir)}, artifacts=[artifact])

    def create_web_app(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        for template_app in ("docs", "web"):
            shutil.rmtree(project_dir / "apps" / template_app, ignore_errors=True)
        node_tools.create_next_app(self.runner, cwd=project_dir, target="apps/web")
        web_dir = project_dir / "apps" / "web"
        return StageResult(outputs={"web_dir": str(web_dir)}, artifacts=[_local_path("Next.js app", web_dir)])

    def install_ui_components(self, ctx: ContextView) -> StageResult:
        web_dir = Path(ctx["web_dir"])
        envfiles.write_if_missing(web_dir / "components.json", templates.COMPONENTS_JSON)
        node_tools.shadcn_add(self.runner, cwd=web_dir, components=self.config.ui_components)
        return StageResult()

    # -- backend -----------------------------------------------------------

    def provision_backend(self, ctx: ContextView) -> StageResult:
        if self.local_only:
            return StageResult.skipped("local-only mode")
        project_dir = Path(ctx["project_dir"])
        name = self.inputs.project_name
        warnings: list[str] = []

        existing = supabase_cli.find_project(supabase_cli.list_projects(self.runner, cwd=project_dir), name)
        if existing is not None:
            ref = existing.ref
            print(f"Reusing existing Supabase project {name} ({ref})")
            warnings.append(
                f"reused existing Supabase project {ref}; the database password must match the one entered"
            )
            artifact = Artifact(
                kind="remote_resource",
                label="Supabase project (existing)",
                location=supabase_cli.dashboard_url(ref),
            )
        else:
            ref = supabase_cli.create_project(
                self.runner,
                cwd=project_dir,
                name=name,
                db_password=self.inputs.db_password,
                region=self.inputs.region,
                org=self.inputs.org_reference,
            )
            print(f"Created Supabase project {name} ({ref})")
            artifact = Artifact(
                kind="remote_resource",
                label="Supabase project",
                location=supabase_cli.dashboard_url(ref),
                removal_hint=f"supabase projects delete {ref}",
            )

        with _recording(artifact):
            ready = wait_until(
                lambda: supabase_cli.project_ready(self.runner, cwd=project_dir, ref=ref),
                policy=self.config.ready_poll,
                what=f"Supabase project {ref} to become ready",
                sleep=self.sleep,
            )
            if not ready:
                warnings.append(f"project {ref} did not report ready; later remote steps may fail")
            keys = supabase_cli.fetch_api_keys(self.runner, cwd=project_dir, ref=ref)

        self.runner.add_secret(keys.service_role)
        return StageResult(
            outputs={
                "project_ref": ref,
                "api_url": supabase_cli.api_url(ref),
                "anon_key": keys.anon,
                "service_role_key": keys.service_role,
                "db_url": supabase_cli.db_url(ref, self.inputs.db_password),
            },
            artifacts=[artifact],
            warnings=warnings,
        )

    def init_local_backend(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        artifacts: list[Artifact] = []
        supabase_dir = project_dir / "supabase"
        if supabase_dir.is_dir():
            print(f"Reusing existing {supabase_dir}")
        else:
            supabase_cli.init(self.runner, cwd=project_dir)
            artifacts.append(_local_path("Supabase config", supabase_dir))

        stack = Artifact(
            kind="remote_resource",
            label="Local Supabase stack (docker containers)",
            location=str(project_dir),
            removal_hint=f"cd {project_dir} && supabase stop --no-backup",
        )
        # A failed `supabase start` can leave some containers running.
        with _recording(*artifacts, stack):
            if supabase_cli.is_running(self.runner, cwd=project_dir):
                print("Local Supabase stack is already running")
            else:
                supabase_cli.start(self.runner, cwd=project_dir)
            status = supabase_cli.local_status(self.runner, cwd=project_dir)

        artifacts.append(stack)
        self.runner.add_secret(status.service_role_key)
        if status.studio_url:
            artifacts.append(Artifact(kind="url", label="Supabase Studio (local)", location=status.studio_url))
        return StageResult(
            outputs={
                "local_api_url": status.api_url,
                "local_anon_key": status.anon_key,
                "local_service_role_key": status.service_role_key,
                "local_db_url": status.db_url,
                "local_studio_url": status.studio_url,
            },
            artifacts=artifacts,
        )

    def link_backend(self, ctx: ContextView) -> StageResult:
        ref = ctx.get("project_ref")
        if not ref:
            return StageResult.skipped("no remote project")
        supabase_cli.link(self.runner, cwd=Path(ctx["project_dir"]), ref=ref, db_password=self.inputs.db_password)
        return StageResult()

    # -- generated files ---------------------------------------------------

    def write_credentials(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        values: dict[str, str] = {}
        if ctx.get("project_ref"):
            values.update(
                {
                    "SUPABASE_PROJECT_REF": ctx["project_ref"],
                    "SUPABASE_URL": ctx["api_url"],
                    "SUPABASE_ANON_KEY": ctx["anon_key"],
                    "SUPABASE_SERVICE_ROLE_KEY": ctx["service_role_key"],
                    "SUPABASE_DB_URL": ctx["db_url"],
                }
            )
        values["SUPABASE_DB_PASSWORD"] = self.inputs.db_password
        values.update(
            {
                "LOCAL_SUPABASE_URL": ctx["local_api_url"],
                "LOCAL_SUPABASE_ANON_KEY": ctx["local_anon_key"],
                "LOCAL_SUPABASE_SERVICE_ROLE_KEY": ctx["local_service_role_key"],
                "LOCAL_SUPABASE_DB_URL": ctx["local_db_url"],
                "LOCAL_SUPABASE_STUDIO_URL": ctx["local_studio_url"],
            }
        )
        path = envfiles.write_credentials_file(
            project_dir / CREDENTIALS_FILENAME, values, project_name=self.inputs.project_name
        )
        envfiles.append_ignore_patterns(project_dir / ".gitignore", templates.CREDENTIAL_IGNORE_PATTERNS)
        return StageResult(artifacts=[_credential_file("Supabase credentials", path)])

    def generate_env_files(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        if ctx.get("api_url"):
            source = "remote project"
            url, anon, service = ctx["api_url"], ctx["anon_key"], ctx["service_role_key"]
        else:
            source = "local stack"
            url, anon, service = ctx["local_api_url"], ctx["local_anon_key"], ctx["local_service_role_key"]
        header = [f"Supabase configuration ({source})", "Generated by stackup; do not commit."]

        web_env = envfiles.write_env_file(
            project_dir / "apps" / "web" / ".env.local",
            {"NEXT_PUBLIC_SUPABASE_URL": url, "NEXT_PUBLIC_SUPABASE_ANON_KEY": anon},
            header=header,
        )
        mcp_env = envfiles.write_env_file(
            project_dir / "apps" / "mcp-server" / ".env.local",
            {"SUPABASE_URL": url, "SUPABASE_ANON_KEY": anon, "SUPABASE_SERVICE_ROLE_KEY": service},
            header=header,
        )
        (project_dir / "apps" / "web" / ".env.example").write_text(templates.WEB_ENV_EXAMPLE, encoding="utf-8")
        (project_dir / "apps" / "mcp-server" / ".env.example").write_text(
            templates.MCP_ENV_EXAMPLE, encoding="utf-8"
        )
        envfiles.append_ignore_patterns(project_dir / ".gitignore", templates.ENV_IGNORE_PATTERNS)
        return StageResult(
            artifacts=[
                _credential_file("Web app environment", web_env),
                _credential_file("MCP server environment", mcp_env),
            ]
        )

    def generate_code_files(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        web_lib = Path(ctx["web_dir"]) / "src" / "lib"
        mcp_dir = project_dir / "apps" / "mcp-server"
        files = {
            mcp_dir / "package.json": templates.MCP_PACKAGE_JSON,
            mcp_dir / "tsconfig.json": templates.MCP_TSCONFIG_JSON,
            mcp_dir / "src" / "index.ts": templates.MCP_INDEX_TS,
            web_lib / "supabase-client.ts": templates.SUPABASE_BROWSER_CLIENT_TS,
            web_lib / "supabase-server.ts": templates.SUPABASE_SERVER_CLIENT_TS,
        }
        for path, content in files.items():
            if envfiles.write_if_missing(path, content):
                print(f"Created: {path.relative_to(project_dir).as_posix()}")
        return StageResult(artifacts=[_local_path("MCP server", mcp_dir)])

    def setup_migrations(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        migrations_dir = project_dir / "supabase" / "migrations"
        if migrations_dir.is_dir():
            existing = sorted(p.name for p in migrations_dir.iterdir() if p.name.endswith(templates.MIGRATION_SUFFIX))
            if existing:
                return StageResult.skipped(f"migration already present: {existing[-1]}")
        stamp = self.now().astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")
        path = migrations_dir / f"{stamp}{templates.MIGRATION_SUFFIX}"
        envfiles.write_if_missing(path, templates.CREATE_ITEMS_TABLE_SQL)
        migration = _local_path("Initial migration", path)
        with _recording(migration):
            supabase_cli.apply_migrations(self.runner, cwd=project_dir)
        return StageResult(artifacts=[migration])

    # -- dependencies and git ----------------------------------------------

    def install_dependencies(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        node_tools.add_app_dependencies(self.runner, cwd=project_dir, app="web", packages=WEB_SUPABASE_PACKAGES)
        node_tools.install(self.runner, cwd=project_dir)
        return StageResult()

    def commit(self, ctx: ContextView) -> StageResult:
        project_dir = Path(ctx["project_dir"])
        if not git_cli.is_repository(self.runner, cwd=project_dir):
            git_cli.init(self.runner, cwd=project_dir)
        sha = git_cli.commit_all(self.runner, cwd=project_dir, message=COMMIT_MESSAGE)
        if sha is None:
            return StageResult(warnings=["nothing to commit; working tree already clean"])
        return StageResult(outputs={"commit_sha": sha})

    def push_repository(self, ctx: ContextView) -> StageResult:
        repo = self.inputs.target_repo
        if not repo:
            return StageResult.skipped("no GitHub repository given")
        project_dir = Path(ctx["project_dir"])
        git_cli.ensure_remote(
            self.runner, cwd=project_dir, remote_name="origin", remote_url=github_cli.https_remote_url(repo)
        )
        git_cli.rename_branch(self.runner, cwd=project_dir, branch="main")
        git_cli.push_branch(self.runner, cwd=project_dir, remote_name="origin", branch="main")
        return StageResult(
            artifacts=[Artifact(kind="url", label="GitHub repository", location=f"https://github.com/{repo}")]
        )

    def setup_ci(self, ctx: ContextView) -> StageResult:
        repo = self.inputs.target_repo
        if not repo:
            return StageResult.skipped("no GitHub repository given")
        ref = ctx.get("project_ref")
        if not ref:
            return StageResult.skipped("no remote project")

        project_dir = Path(ctx["project_dir"])
        workflow = project_dir / WORKFLOW_PATH
        artifacts: list[Artifact] = []
        if envfiles.write_if_missing(workflow, templates.MIGRATIONS_WORKFLOW_YML):
            artifacts.append(_local_path("Migrations workflow", workflow))

        warnings: list[str] = []
        sha = git_cli.commit_paths(
            self.runner, cwd=project_dir, paths=[WORKFLOW_PATH.as_posix()], message=WORKFLOW_COMMIT_MESSAGE
        )
        if sha is not None and git_cli.has_remote(self.runner, cwd=project_dir, remote_name="origin"):
            try:
                git_cli.push_branch(self.runner, cwd=project_dir, remote_name="origin", branch="main")
            except ExternalToolFailure as exc:
                warnings.append(
                    f"migrations workflow committed but not pushed ({exc.message}); run `git push origin main`"
                )

        github_cli.set_secret(self.runner, cwd=project_dir, repo=repo, name="SUPABASE_PROJECT_REF", value=ref)
        db_url = ctx.get("db_url")
        if db_url:
            github_cli.set_secret(
                self.runner, cwd=project_dir, repo=repo, name="SUPABASE_DB_URL_PRODUCTION", value=db_url
            )
        token = supabase_cli.read_access_token(self.home)
        if token:
            github_cli.set_secret(
                self.runner, cwd=project_dir, repo=repo, name="SUPABASE_ACCESS_TOKEN", value=token
            )
        else:
            warnings.append(
                "no Supabase access token found; run `supabase login`, then "
                f"`gh secret set SUPABASE_ACCESS_TOKEN -R {repo}`"
            )
        artifacts.append(
            Artifact(
                kind="remote_resource",
                label="GitHub Actions secrets",
                location=f"https://github.com/{repo}/settings/secrets/actions",
                removal_hint=f"gh secret delete <NAME> -R {repo}",
            )
        )
        return StageResult(artifacts=artifacts, warnings=warnings)

    def deploy(self, ctx: ContextView) -> StageResult:
        if self.local_only:
            return StageResult.skipped("local-only mode")
        if not self.inputs.deploy:
            return StageResult.skipped("deployment declined")
        url = ctx.get("api_url")
        anon = ctx.get("anon_key")
        if not url or not anon:
            return StageResult.skipped("no remote credentials")

        project_dir = Path(ctx["project_dir"])
        web_dir = Path(ctx["web_dir"])
        envfiles.write_if_missing(web_dir / ".vercelignore", templates.VERCELIGNORE)
        vercel_cli.link(self.runner, cwd=web_dir)
        linked = Artifact(
            kind="remote_resource",
            label="Vercel project",
            location=str(web_dir / ".vercel"),
            removal_hint=f"vercel project rm {web_dir.name} (or delete it in the Vercel dashboard)",
        )
        with _recording(linked):
            vercel_cli.set_env(self.runner, cwd=web_dir, name="NEXT_PUBLIC_SUPABASE_URL", value=url)
            vercel_cli.set_env(self.runner, cwd=web_dir, name="NEXT_PUBLIC_SUPABASE_ANON_KEY", value=anon)
            deployment_url = vercel_cli.deploy_production(self.runner, cwd=web_dir)

        info = envfiles.write_deployment_info(
            project_dir / DEPLOYMENT_INFO_FILENAME,
            deployment_url=deployment_url,
            project_name=self.inputs.project_name,
            supabase_url=url,
        )
        return StageResult(
            outputs={"deployment_url": deployment_url},
            artifacts=[
                linked,
                Artifact(kind="url", label="Production deployment", location=deployment_url),
                _local_path("Deployment info", info),
            ],
        )


def build_stages(
    inputs: InputSet,
    config: SetupConfig,
    *,
    runner: CommandRunner,
    workdir: Path,
    local_only: bool,
    home: Path | None = None,
    sleep: Callable[[float], None] = time.sleep,
    now: Callable[[], datetime] | None = None,
) -> list[Stage]:
    return SetupStages(
        inputs,
        config,
        runner=runner,
        workdir=workdir,
        local_only=local_only,
        home=home,
        sleep=sleep,
        now=now,
    ).build()
