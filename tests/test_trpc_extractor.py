from pathlib import Path
import textwrap

from routewise.domain.models import RouteSource, ScanOptions
from routewise.extractors.trpc.extractor import (
    default_procedure_classifier,
    extract_trpc_handlers,
    parse_trpc_routes,
)
from routewise.syntax.project import Project


def project_of(tmp_path: Path, files: dict[str, str]) -> Project:
    return Project.from_sources(tmp_path, {k: textwrap.dedent(v) for k, v in files.items()})


def routes_of(handlers) -> set[tuple[str, str]]:
    return {(h.method, h.path) for h in handlers}


def test_default_classifier():
    assert default_procedure_classifier("query", "anything") == "GET"
    assert default_procedure_classifier("mutation", "anything") == "POST"
    assert default_procedure_classifier("subscription", "onEvent") is None
    assert default_procedure_classifier(None, "createUser") == "POST"
    assert default_procedure_classifier(None, "listUsers") == "GET"
    assert default_procedure_classifier(None, "ping") is None


def test_string_literal_procedures_on_builder_chain(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "server/routers/app.ts": """
                import { createRouter } from '../context';

                export const appRouter = createRouter()
                  .query('list', {
                    resolve() { return []; },
                  })
                  .mutation('create', {
                    input: z.object({ name: z.string() }),
                    resolve({ input }) { return input; },
                  });
            """,
        },
    )
    handlers = extract_trpc_handlers(project)
    assert routes_of(handlers) == {("GET", "/api/trpc/app.list"), ("POST", "/api/trpc/app.create")}

    create = next(h for h in handlers if h.method == "POST")
    assert create.source is RouteSource.RPC
    assert create.body == "{}"
    assert create.headers == {"Content-Type": "application/json"}
    assert create.line == 8


def test_string_literal_procedures_named_from_router_file(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "server/user.router.ts": """
                export default createRouter().query('byId', { resolve: () => null });
            """,
            "server/db.ts": """
                export const rows = () => db.query('SELECT 1');
            """,
        },
    )
    assert routes_of(extract_trpc_handlers(project)) == {("GET", "/api/trpc/user.byId")}


def test_object_routers_compose_across_files(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "server/api/routers/user.ts": """
                import { createTRPCRouter, publicProcedure, protectedProcedure } from '../trpc';

                export const userRouter = createTRPCRouter({
                  getById: publicProcedure.input(z.string()).query(({ input }) => db.user.find(input)),
                  update: protectedProcedure.input(schema).mutation(async ({ input }) => db.user.update(input)),
                  onChange: publicProcedure.subscription(() => observable(() => {})),
                });
            """,
            "server/api/routers/post.ts": """
                export const postRouter = createTRPCRouter({
                  list: publicProcedure.query(() => []),
                });
            """,
            "server/api/root.ts": """
                import { createTRPCRouter, publicProcedure } from './trpc';
                import { userRouter } from './routers/user';
                import * as posts from './routers/post';

                export const appRouter = createTRPCRouter({
                  health: publicProcedure.query(() => 'ok'),
                  user: userRouter,
                  post: posts.postRouter,
                  admin: {
                    stats: publicProcedure.query(() => 1),
                  },
                });
            """,
        },
    )
    handlers = extract_trpc_handlers(project)
    assert routes_of(handlers) == {
        ("GET", "/api/trpc/health"),
        ("GET", "/api/trpc/admin.stats"),
        ("GET", "/api/trpc/user.getById"),
        ("POST", "/api/trpc/user.update"),
        ("GET", "/api/trpc/post.list"),
    }

    by_path = {h.path: h for h in handlers}
    assert by_path["/api/trpc/user.getById"].file.endswith("routers/user.ts")
    assert by_path["/api/trpc/user.getById"].line == 5
    assert by_path["/api/trpc/health"].file.endswith("root.ts")


def test_unmounted_router_uses_its_own_name(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "health.ts": "export const healthRouter = createTRPCRouter({ ping: publicProcedure.query(() => 'pong') });\n",
        },
    )
    assert routes_of(extract_trpc_handlers(project)) == {("GET", "/api/trpc/health.ping")}


def test_mount_cycle_terminates(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "routers.ts": """
                export const aRouter = createTRPCRouter({ ping: publicProcedure.query(() => 1), b: bRouter });
                export const bRouter = createTRPCRouter({ pong: publicProcedure.query(() => 2), a: aRouter });
            """,
        },
    )
    paths = {h.path for h in extract_trpc_handlers(project)}
    assert "/api/trpc/a.ping" in paths
    assert "/api/trpc/a.b.pong" in paths


def test_custom_factory_base_path_and_classifier(tmp_path: Path):
    files = {
        "api.ts": """
            export const appRouter = t.makeRoutes({
              hello: t.procedure.query(() => 'hi'),
              save: t.procedure.mutation(() => true),
            });
        """,
    }
    assert extract_trpc_handlers(project_of(tmp_path, files)) == []

    options = ScanOptions(
        trpc_router_factories=["makeRoutes"],
        trpc_base_path="/rpc/",
        procedure_classifier=lambda kind, name: "PUT" if kind == "mutation" else None,
    )
    handlers = extract_trpc_handlers(project_of(tmp_path, files), options)
    assert routes_of(handlers) == {("PUT", "/rpc/app.save")}


def test_parse_trpc_routes_requires_dependency_unless_forced(tmp_path: Path):
    (tmp_path / "package.json").write_text('{"dependencies": {"react": "18"}}', encoding="utf-8")
    (tmp_path / "router.ts").write_text(
        "export const appRouter = createTRPCRouter({ me: publicProcedure.query(() => null) });\n",
        encoding="utf-8",
    )
    assert parse_trpc_routes(tmp_path) == []

    routes = parse_trpc_routes(tmp_path, ScanOptions(force=True))
    assert [(r.method, r.path, r.type) for r in routes] == [("GET", "/api/trpc/app.me", "rpc")]


def test_router_names_starting_like_factory_prefixes(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "server/routers/user.ts": """
                export const userRouter = createTRPCRouter({
                  byId: publicProcedure.query(() => null),
                  update: publicProcedure.mutation(() => null),
                });
            """,
            "server/routers/building.ts": """
                export const buildingRouter = createTRPCRouter({
                  list: publicProcedure.query(() => []),
                });
            """,
        },
    )
    assert routes_of(extract_trpc_handlers(project)) == {
        ("GET", "/api/trpc/user.byId"),
        ("POST", "/api/trpc/user.update"),
        ("GET", "/api/trpc/building.list"),
    }


def test_plain_query_calls_in_router_named_files_are_ignored(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "src/api/orders.router.ts": """
                import { pool } from '../db';

                export async function list() {
                  return await pool.query('orders');
                }

                export const archived = () => pool.client.query('archive');
            """,
        },
    )
    assert extract_trpc_handlers(project) == []


def test_string_named_procedure_inside_router_object_is_counted_once(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "server/app.ts": """
                export const appRouter = createRouter({
                  x: t.query('list', { resolve: () => [] }),
                });
            """,
        },
    )
    assert routes_of(extract_trpc_handlers(project)) == {("GET", "/api/trpc/app.list")}
