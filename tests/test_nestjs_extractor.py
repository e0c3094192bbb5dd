from pathlib import Path
import json
import textwrap

from routewise.domain.models import HTTP_METHODS, RouteSource, ScanOptions
from routewise.extractors.nestjs.extractor import (
    extract_nestjs_handlers,
    find_global_prefix,
    join_route,
    parse_nestjs_routes,
)
from routewise.syntax.project import Project


def project_of(tmp_path: Path, files: dict[str, str]) -> Project:
    return Project.from_sources(tmp_path, {k: textwrap.dedent(v) for k, v in files.items()})


USERS_CONTROLLER = """
import { Controller, Get, Post, Body, Param, Query, Headers, Header } from '@nestjs/common';

@Controller('users')
export class UsersController {
  @Get()
  findAll(@Query('page') page: string) {}

  @Get(':id')
  findOne(@Param('id') id: string) {}

  @Post()
  @Header('Cache-Control', 'none')
  create(@Body() dto: CreateUserDto, @Headers('x-tenant') tenant: string) {}

  @Post('bulk')
  bulk(@Body('items') items: string[]) {}

  helper() {}
}
"""

MAIN = """
import { NestFactory } from '@nestjs/core';

async function bootstrap() {
  const app = await NestFactory.create(AppModule);
  app.setGlobalPrefix('api');
  await app.listen(3000);
}
bootstrap();
"""


def test_join_route():
    assert join_route("api", "/users/", ":id") == "/api/users/:id"
    assert join_route("", "", None) == "/"
    assert join_route("/v1/", "items", "") == "/v1/items"


def test_controller_routes_with_global_prefix(tmp_path: Path):
    project = project_of(tmp_path, {"src/users/users.controller.ts": USERS_CONTROLLER, "src/main.ts": MAIN})
    assert find_global_prefix(project) == "api"

    handlers = extract_nestjs_handlers(project)
    assert [(h.method, h.path) for h in handlers] == [
        ("GET", "/api/users"),
        ("GET", "/api/users/:id"),
        ("POST", "/api/users"),
        ("POST", "/api/users/bulk"),
    ]

    find_all, find_one, create, bulk = handlers
    assert find_all.source is RouteSource.CONTROLLER
    assert find_all.handler_name == "UsersController.findAll"
    assert find_all.line == 7
    assert find_all.query == {"page": ""}
    assert find_one.query is None and find_one.body is None

    assert create.body == "{}"
    assert create.headers == {
        "Cache-Control": "none",
        "x-tenant": "",
        "Content-Type": "application/json",
    }
    assert json.loads(bulk.body) == {"items": ""}


def test_controller_path_forms_and_all_decorator(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "src/app.ts": """
                import { Controller, All, Get } from '@nestjs/common';

                @Controller({ path: 'health' })
                export class HealthController {
                  @All('ping')
                  ping() {}
                }

                @Controller()
                export class RootController {
                  @Get(['status', 'state'])
                  status() {}

                  @Get()
                  index() {}
                }

                export class NotAController {
                  @Get('x')
                  x() {}
                }
            """,
        },
    )
    handlers = extract_nestjs_handlers(project)

    ping = [h.method for h in handlers if h.path == "/health/ping"]
    assert tuple(ping) == HTTP_METHODS
    others = [(h.method, h.path) for h in handlers if h.path != "/health/ping"]
    assert others == [("GET", "/status"), ("GET", "/")]


def test_non_controller_files_are_skipped(tmp_path: Path):
    project = project_of(
        tmp_path,
        {
            "src/users.service.ts": "export class UsersService { findAll() { return []; } }\n",
        },
    )
    assert extract_nestjs_handlers(project) == []


def test_parse_nestjs_routes(tmp_path: Path):
    (tmp_path / "package.json").write_text('{"dependencies": {"@nestjs/common": "^10"}}', encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "users.controller.ts").write_text(textwrap.dedent(USERS_CONTROLLER), encoding="utf-8")

    routes = parse_nestjs_routes(tmp_path, ScanOptions())
    assert [r.name for r in routes] == [
        "GET /users",
        "GET /users/:id",
        "POST /users",
        "POST /users/bulk",
    ]
    assert {r.type for r in routes} == {"controller"}
