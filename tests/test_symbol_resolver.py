from pathlib import Path
import textwrap

from routewise.syntax.nodes import object_property, string_property
from routewise.syntax.project import Project
from routewise.syntax.resolver import SymbolResolver


def project_of(tmp_path: Path, files: dict[str, str]) -> Project:
    return Project.from_sources(tmp_path, {k: textwrap.dedent(v) for k, v in files.items()})


def elements_of(project: Project, rel: str, var: str):
    sf = project.get_file(rel)
    decl = project.module_declarations(sf, var)[0]
    return SymbolResolver(project).resolve_elements(sf, decl.value)


def slugs(literals) -> list[str]:
    return [string_property(lit.node, "slug") for lit in literals]


def test_inline_and_local_references(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "config.ts": """
                const Posts = { slug: 'posts' } satisfies CollectionConfig;
                const Media = ({ slug: 'media' } as CollectionConfig)!;
                const Pages = defineCollection({ slug: 'pages' });
                const all = [{ slug: 'inline' }, Posts, Media, Pages];
            """,
        },
    )
    assert slugs(elements_of(project, "config.ts", "all")) == ["inline", "posts", "media", "pages"]


def test_named_default_aliased_and_namespace_imports(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "collections/Users.ts": "export const Users = { slug: 'users' };\n",
            "collections/Posts.ts": "export default { slug: 'posts' };\n",
            "collections/Media.ts": "const Media = { slug: 'media' };\nexport { Media as Uploads };\n",
            "collections/all.ts": "export const Tags = { slug: 'tags' };\nexport const Notes = { slug: 'notes' };\n",
            "config.ts": """
                import { Users } from './collections/Users';
                import Posts from './collections/Posts';
                import { Uploads as Files } from './collections/Media';
                import * as extra from './collections/all';
                const all = [Users, Posts, Files, extra.Tags, extra.Notes];
            """,
        },
    )
    found = elements_of(project, "config.ts", "all")
    assert slugs(found) == ["users", "posts", "media", "tags", "notes"]
    assert project.relative(found[0].file) == "collections/Users.ts"
    assert found[0].line == 1


def test_spreads_of_spreads(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "shared.ts": """
                export const core = [{ slug: 'a' }];
                export const more = [...core, { slug: 'b' }];
            """,
            "config.ts": """
                import { more } from './shared';
                const all = [...more, { slug: 'c' }];
            """,
        },
    )
    assert slugs(elements_of(project, "config.ts", "all")) == ["a", "b", "c"]


def test_self_referential_import_graph_terminates(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "a.ts": """
                import { more } from './b';
                export const base = [{ slug: 'a' }, ...more];
            """,
            "b.ts": """
                import { base } from './a';
                export const more = [{ slug: 'b' }, ...base];
            """,
            "config.ts": """
                import { base } from './a';
                const all = [...base];
            """,
        },
    )
    assert sorted(slugs(elements_of(project, "config.ts", "all"))) == ["a", "b"]


def test_object_reference_cycle_returns_none(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "a.ts": "import { B } from './b';\nexport const A = B;\n",
            "b.ts": "import { A } from './a';\nexport const B = A;\n",
        },
    )
    sf = project.get_file("a.ts")
    decl = project.module_declarations(sf, "A")[0]
    assert SymbolResolver(project).resolve_object(sf, decl.value) is None


def test_member_access_on_object_literal(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "config.ts": """
                const Registry = { Users: { slug: 'users' }, Posts: { slug: 'posts' } };
                const all = [Registry.Users, Registry.Posts];
            """,
        },
    )
    assert slugs(elements_of(project, "config.ts", "all")) == ["users", "posts"]


def test_unresolvable_elements_are_skipped(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "config.ts": """
                import { Missing } from 'some-package';
                const all = [Missing, makeCollection(), { slug: 'ok' }];
            """,
        },
    )
    assert slugs(elements_of(project, "config.ts", "all")) == ["ok"]


def test_resolve_object_through_default_export_identifier(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "payload.config.ts": """
                const config = buildConfig({ routes: { api: '/cms' } });
                export default config;
            """,
        },
    )
    sf = project.get_file("payload.config.ts")
    stmt = [c for c in sf.root.named_children if c.type == "export_statement"][0]
    lit = SymbolResolver(project).resolve_object(sf, stmt.child_by_field_name("value"))
    assert lit is not None
    routes = object_property(lit.node, "routes")
    assert string_property(routes, "api") == "/cms"
