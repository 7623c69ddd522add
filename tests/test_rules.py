"""Tests for the built-in rule set."""

from __future__ import annotations

from typing import TYPE_CHECKING

from conftest import make_sources

from nestdoctor.core.config import Config, config_from_mapping
from nestdoctor.engine.module_graph import build_module_graph
from nestdoctor.engine.providers import resolve_providers
from nestdoctor.engine.runner import run_file_rules, run_project_rules
from nestdoctor.rules import architecture, correctness, performance, security

if TYPE_CHECKING:
    from nestdoctor.models import Diagnostic
    from nestdoctor.rules.base import Rule


def _run(rule: Rule, files: dict[str, str], config: Config | None = None) -> list[Diagnostic]:
    """Run a single rule over in-memory files and return its diagnostics."""
    sources = make_sources(files)
    config = config or Config()
    if rule.is_project:
        result = run_project_rules(
            sources, [rule], build_module_graph(sources), resolve_providers(sources), config
        )
    else:
        result = run_file_rules(sources, sources.paths, [rule], config)
    assert result.errors == []
    return result.diagnostics


def _module(name: str, imports: str = "", providers: str = "") -> str:
    return (
        "import { Module } from '@nestjs/common';\n"
        f"@Module({{ imports: [{imports}], providers: [{providers}] }})\n"
        f"export class {name} {{}}\n"
    )


# ---------------------------------------------------------------------------
# Architecture
# ---------------------------------------------------------------------------


class TestNoCircularModuleDeps:
    def test_cycle_with_provider_trace(self) -> None:
        diagnostics = _run(
            architecture.no_circular_module_deps,
            {
                "a.module.ts": _module("AModule", imports="BModule", providers="AService"),
                "b.module.ts": _module(
                    "BModule", imports="forwardRef(() => AModule)", providers="BService"
                ),
                "a.service.ts": (
                    "@Injectable()\n"
                    "export class AService {\n"
                    "  constructor(private readonly b: BService) {}\n"
                    "}\n"
                ),
                "b.service.ts": "@Injectable()\nexport class BService {}\n",
            },
        )

        assert len(diagnostics) == 1
        d = diagnostics[0]
        assert d.message == "Circular module dependency detected: AModule -> BModule"
        assert d.file_path == "a.module.ts"
        assert d.severity == "error"
        assert d.scope == "project"
        assert "AService (in AModule) injects BService (from BModule)" in d.help
        assert "Consider extracting BService into a shared module" in d.help

    def test_cycle_without_injections_uses_generic_help(self) -> None:
        diagnostics = _run(
            architecture.no_circular_module_deps,
            {
                "a.module.ts": _module("AModule", imports="BModule"),
                "b.module.ts": _module("BModule", imports="AModule"),
            },
        )

        assert len(diagnostics) == 1
        assert diagnostics[0].help == architecture.CYCLE_HELP

    def test_no_cycle(self) -> None:
        diagnostics = _run(
            architecture.no_circular_module_deps,
            {
                "a.module.ts": _module("AModule", imports="BModule"),
                "b.module.ts": _module("BModule"),
            },
        )

        assert diagnostics == []


class TestNoGodModule:
    def test_too_many_providers_and_imports(self) -> None:
        config = config_from_mapping(
            {"thresholds": {"god_module_providers": 2, "god_module_imports": 1}}
        )
        diagnostics = _run(
            architecture.no_god_module,
            {"big.module.ts": _module("BigModule", imports="A, B", providers="X, Y, Z")},
            config,
        )

        messages = [d.message for d in diagnostics]
        assert len(messages) == 2
        assert "has 3 providers (max: 2)" in messages[0]
        assert "has 2 imports (max: 1)" in messages[1]

    def test_within_limits(self) -> None:
        diagnostics = _run(
            architecture.no_god_module,
            {"small.module.ts": _module("SmallModule", providers="X")},
        )

        assert diagnostics == []


class TestNoGodService:
    def test_methods_and_dependencies(self) -> None:
        config = config_from_mapping(
            {"thresholds": {"god_service_methods": 2, "god_service_deps": 1}}
        )
        diagnostics = _run(
            architecture.no_god_service,
            {
                "big.service.ts": (
                    "@Injectable()\n"
                    "export class BigService {\n"
                    "  constructor(private a: AService, private b: BService) {}\n"
                    "  one() {}\n"
                    "  two() {}\n"
                    "  public three() {}\n"
                    "  private hidden() {}\n"
                    "  static make() {}\n"
                    "}\n"
                ),
            },
            config,
        )

        messages = [d.message for d in diagnostics]
        assert messages == [
            "Service 'BigService' has 3 public methods (max: 2). Consider splitting.",
            "Service 'BigService' has 2 dependencies (max: 1). Consider splitting.",
        ]
        assert all(d.file_path == "big.service.ts" for d in diagnostics)


class TestNoManualInstantiation:
    def test_flags_services_and_guards_in_methods(self) -> None:
        diagnostics = _run(
            architecture.no_manual_instantiation,
            {
                "job.ts": (
                    "export class Job {\n"
                    "  run() {\n"
                    "    const users = new UsersService();\n"
                    "    const guard = new AuthGuard();\n"
                    "  }\n"
                    "}\n"
                    "const top = new RolesGuard();\n"
                    "@UseGuards(new JwtGuard())\n"
                    "export class Other {}\n"
                    "const when = new Date();\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [3, 4]
        assert "'UsersService'" in diagnostics[0].message
        assert "'AuthGuard'" in diagnostics[1].message


class TestNoOrmInControllers:
    def test_orm_types_and_decorators(self) -> None:
        diagnostics = _run(
            architecture.no_orm_in_controllers,
            {
                "users.controller.ts": (
                    "@Controller('users')\n"
                    "export class UsersController {\n"
                    "  constructor(\n"
                    "    private readonly prisma: PrismaService,\n"
                    "    @InjectRepository(User) private readonly repo: Repository<User>,\n"
                    "    private readonly users: UsersService,\n"
                    "  ) {}\n"
                    "}\n"
                ),
            },
        )

        messages = [d.message for d in diagnostics]
        assert len(messages) == 3
        assert "'PrismaService'" in messages[0]
        assert "'Repository'" in messages[1]
        assert "@InjectRepository()" in messages[2]

    def test_services_may_use_orm(self) -> None:
        diagnostics = _run(
            architecture.no_orm_in_controllers,
            {
                "users.service.ts": (
                    "@Injectable()\n"
                    "export class UsersService {\n"
                    "  constructor(private readonly prisma: PrismaService) {}\n"
                    "}\n"
                ),
            },
        )

        assert diagnostics == []


class TestRequireModuleBoundaries:
    def test_deep_import_into_sibling_internals(self) -> None:
        diagnostics = _run(
            architecture.require_module_boundaries,
            {
                "users/users.service.ts": (
                    "import { Injectable } from '@nestjs/common';\n"
                    "import { OrderEntity } from '../orders/entities/order.entity';\n"
                    "import { OrdersService } from '../orders/orders.service';\n"
                    "import { CreateUserDto } from './dto/create-user.dto';\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [2]
        assert diagnostics[0].message == (
            "Import '../orders/entities/order.entity' reaches into another module's internals."
        )
        assert diagnostics[0].severity == "info"


class TestNoServiceLocator:
    def test_module_ref_lookups(self) -> None:
        diagnostics = _run(
            architecture.no_service_locator,
            {
                "jobs.service.ts": (
                    "@Injectable()\n"
                    "export class JobsService {\n"
                    "  constructor(private readonly moduleRef: ModuleRef) {}\n"
                    "\n"
                    "  run() {\n"
                    "    const a = this.moduleRef.get(UsersService);\n"
                    "    const b = moduleRef.resolve(OrdersService);\n"
                    "    const c = this.config.get('PORT');\n"
                    "  }\n"
                    "}\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [6, 7]
        assert diagnostics[0].message == (
            "Service locator pattern: 'this.moduleRef.get()' hides dependencies. "
            "Use constructor injection instead."
        )


# ---------------------------------------------------------------------------
# Correctness
# ---------------------------------------------------------------------------


class TestMissingContractMethods:
    def test_guard_without_can_activate(self) -> None:
        diagnostics = _run(
            correctness.no_missing_guard_method,
            {
                "guards.ts": (
                    "@Injectable()\n"
                    "export class AuthGuard {}\n"
                    "@Injectable()\n"
                    "export class RolesGuard implements CanActivate {\n"
                    "  canActivate(context: ExecutionContext) { return true; }\n"
                    "}\n"
                    "@Injectable()\n"
                    "export class JwtGuard extends PassportGuard {}\n"
                ),
            },
        )

        assert [d.message for d in diagnostics] == [
            "Guard 'AuthGuard' is missing the 'canActivate()' method."
        ]
        assert diagnostics[0].rule == "correctness/no-missing-guard-method"

    def test_pipe_without_transform(self) -> None:
        diagnostics = _run(
            correctness.no_missing_pipe_method,
            {"p.ts": "@Injectable()\nexport class ParseIdPipe {}\n"},
        )

        assert len(diagnostics) == 1
        assert "'transform()'" in diagnostics[0].message

    def test_interceptor_without_intercept(self) -> None:
        diagnostics = _run(
            correctness.no_missing_interceptor_method,
            {"i.ts": "@Injectable()\nexport class LoggingInterceptor {}\n"},
        )

        assert len(diagnostics) == 1
        assert "'intercept()'" in diagnostics[0].message

    def test_undecorated_classes_ignored(self) -> None:
        diagnostics = _run(
            correctness.no_missing_guard_method,
            {"g.ts": "export class HelperGuard {}\n"},
        )

        assert diagnostics == []


class TestNoMissingFilterCatch:
    def test_filter_without_catch(self) -> None:
        diagnostics = _run(
            correctness.no_missing_filter_catch,
            {
                "filters.ts": (
                    "@Catch(HttpException)\n"
                    "export class HttpFilter {}\n"
                    "@Catch()\n"
                    "export class AllFilter {\n"
                    "  catch(exception: unknown, host: ArgumentsHost) {}\n"
                    "}\n"
                ),
            },
        )

        assert len(diagnostics) == 1
        assert "'HttpFilter'" in diagnostics[0].message
        assert diagnostics[0].line == 1


class TestNoEmptyHandlers:
    def test_empty_and_comment_only_bodies(self) -> None:
        diagnostics = _run(
            correctness.no_empty_handlers,
            {
                "c.ts": (
                    "@Controller()\n"
                    "export class CatsController {\n"
                    "  @Get()\n"
                    "  findAll() {}\n"
                    "  @Post()\n"
                    "  create() {\n"
                    "    // later\n"
                    "  }\n"
                    "  @Get(':id')\n"
                    "  findOne() {\n"
                    "    return 1;\n"
                    "  }\n"
                    "  helper() {}\n"
                    "}\n"
                ),
            },
        )

        assert [d.message for d in diagnostics] == [
            "Handler 'findAll()' has an empty body.",
            "Handler 'create()' has an empty body.",
        ]
        assert [d.line for d in diagnostics] == [3, 5]
        assert all(d.severity == "warning" for d in diagnostics)


class TestNoMissingInjectable:
    def test_provider_without_decorator(self) -> None:
        diagnostics = _run(
            correctness.no_missing_injectable,
            {
                "app.module.ts": _module(
                    "AppModule", providers="PlainService, GoodService, ExternalService"
                ),
                "plain.service.ts": "export class PlainService {}\n",
                "good.service.ts": "@Injectable()\nexport class GoodService {}\n",
            },
        )

        assert len(diagnostics) == 1
        d = diagnostics[0]
        assert d.file_path == "plain.service.ts"
        assert "'PlainService'" in d.message
        assert "'AppModule'" in d.message


class TestNoDuplicateModuleName:
    def test_second_declaration_reported(self) -> None:
        diagnostics = _run(
            correctness.no_duplicate_module_name,
            {
                "a/shared.module.ts": _module("SharedModule"),
                "b/shared.module.ts": _module("SharedModule"),
            },
        )

        assert len(diagnostics) == 1
        assert diagnostics[0].file_path == "b/shared.module.ts"
        assert diagnostics[0].message == (
            "Module name 'SharedModule' is already declared in a/shared.module.ts."
        )


class TestNoDuplicateRoutes:
    def test_same_method_path_and_version(self) -> None:
        diagnostics = _run(
            correctness.no_duplicate_routes,
            {
                "users.controller.ts": (
                    "@Controller('users')\n"
                    "export class UsersController {\n"
                    "  @Get()\n"
                    "  findAll() { return []; }\n"
                    "\n"
                    "  @Get()\n"
                    "  list() { return []; }\n"
                    "\n"
                    "  @Get(':id')\n"
                    "  findOne() { return {}; }\n"
                    "\n"
                    "  @Version('2')\n"
                    "  @Get(':id')\n"
                    "  findOneV2() { return {}; }\n"
                    "\n"
                    "  @Post(':id')\n"
                    "  update() { return {}; }\n"
                    "}\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [6]
        assert diagnostics[0].message == (
            "Duplicate route: @Get() is already defined in 'findAll()'."
        )

    def test_only_controllers_checked(self) -> None:
        diagnostics = _run(
            correctness.no_duplicate_routes,
            {
                "helper.ts": (
                    "export class Helper {\n"
                    "  @Get()\n"
                    "  a() {}\n"
                    "  @Get()\n"
                    "  b() {}\n"
                    "}\n"
                ),
            },
        )

        assert diagnostics == []


class TestNoAsyncWithoutAwait:
    def test_methods_and_functions(self) -> None:
        diagnostics = _run(
            correctness.no_async_without_await,
            {
                "jobs.ts": (
                    "export class Jobs {\n"
                    "  async run() {\n"
                    "    return this.work();\n"
                    "  }\n"
                    "\n"
                    "  async wait() {\n"
                    "    await this.work();\n"
                    "  }\n"
                    "\n"
                    "  async nested() {\n"
                    "    return items.map(async (i) => await i);\n"
                    "  }\n"
                    "}\n"
                    "export async function load() {\n"
                    "  return 1;\n"
                    "}\n"
                    "async function fetchAll() {\n"
                    "  await load();\n"
                    "}\n"
                ),
            },
        )

        assert [d.message for d in diagnostics] == [
            "Async method 'run()' has no await expression.",
            "Async method 'nested()' has no await expression.",
            "Async function 'load()' has no await expression.",
        ]
        assert [d.line for d in diagnostics] == [2, 10, 14]


class TestRequireLifecycleInterface:
    def test_hook_without_interface(self) -> None:
        diagnostics = _run(
            correctness.require_lifecycle_interface,
            {
                "cache.service.ts": (
                    "@Injectable()\n"
                    "export class CacheService implements OnModuleInit {\n"
                    "  onModuleInit() {}\n"
                    "  onModuleDestroy() {}\n"
                    "}\n"
                    "@Injectable()\n"
                    "export class QueueService implements OnApplicationShutdown, OnModuleInit {\n"
                    "  onApplicationShutdown() {}\n"
                    "  onModuleInit() {}\n"
                    "}\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [4]
        assert diagnostics[0].message == (
            "Class 'CacheService' has 'onModuleDestroy()' but does not implement "
            "'OnModuleDestroy'."
        )


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


class TestNoSyncIo:
    def test_sync_calls(self) -> None:
        diagnostics = _run(
            performance.no_sync_io,
            {
                "io.ts": (
                    "const a = fs.readFileSync('a');\n"
                    "if (existsSync('b')) {}\n"
                    "await fs.promises.readFile('c');\n"
                ),
            },
        )

        assert [(d.line, d.message) for d in diagnostics] == [
            (1, "Synchronous I/O call 'readFileSync()' blocks the event loop."),
            (2, "Synchronous I/O call 'existsSync()' blocks the event loop."),
        ]


class TestNoOrphanModules:
    def test_unimported_module(self) -> None:
        diagnostics = _run(
            performance.no_orphan_modules,
            {
                "app.module.ts": _module("AppModule", imports="UsersModule"),
                "users.module.ts": _module("UsersModule"),
                "orphan.module.ts": _module("OrphanModule"),
            },
        )

        assert [d.file_path for d in diagnostics] == ["orphan.module.ts"]
        assert diagnostics[0].severity == "info"


class TestNoUnusedProviders:
    def test_provider_nobody_injects(self) -> None:
        diagnostics = _run(
            performance.no_unused_providers,
            {
                "users.controller.ts": (
                    "@Controller('users')\n"
                    "export class UsersController {\n"
                    "  constructor(private readonly users: UsersService) {}\n"
                    "}\n"
                ),
                "users.service.ts": (
                    "@Injectable()\n"
                    "export class UsersService {\n"
                    "  constructor(private readonly mail: MailService) {}\n"
                    "}\n"
                ),
                "mail.service.ts": "@Injectable()\nexport class MailService {}\n",
                "audit.service.ts": "@Injectable()\nexport class AuditService {}\n",
                "jwt.strategy.ts": "@Injectable()\nexport class JwtStrategy {}\n",
                "cache.service.ts": "@Injectable()\nexport class CacheService {}\n",
                "cache.module.ts": (
                    "@Module({ providers: [CacheService], exports: [CacheService] })\n"
                    "export class CacheModule {}\n"
                ),
            },
        )

        assert [d.file_path for d in diagnostics] == ["audit.service.ts"]
        assert diagnostics[0].message == (
            "Provider 'AuditService' is never injected by any other provider or controller."
        )


class TestNoUnusedModuleExports:
    SHARED = (
        "@Module({\n"
        "  providers: [CacheService, MailService, LogService],\n"
        "  exports: [CacheService, MailService, LogService, ConfigModule],\n"
        "})\n"
        "export class SharedModule {}\n"
    )

    def test_export_no_importer_uses(self) -> None:
        diagnostics = _run(
            performance.no_unused_module_exports,
            {
                "shared.module.ts": self.SHARED,
                "config.module.ts": "@Module({})\nexport class ConfigModule {}\n",
                "users.module.ts": (
                    "@Module({\n"
                    "  imports: [SharedModule],\n"
                    "  controllers: [UsersController],\n"
                    "  providers: [UsersService],\n"
                    "})\n"
                    "export class UsersModule {}\n"
                ),
                "users.service.ts": (
                    "@Injectable()\n"
                    "export class UsersService {\n"
                    "  constructor(private readonly cache: CacheService) {}\n"
                    "}\n"
                ),
                "users.controller.ts": (
                    "@Controller('users')\n"
                    "export class UsersController {\n"
                    "  constructor(private readonly mail: MailService) {}\n"
                    "}\n"
                ),
            },
        )

        assert [d.message for d in diagnostics] == [
            "Module 'SharedModule' exports 'LogService' but no importing module uses it."
        ]
        assert diagnostics[0].file_path == "shared.module.ts"

    def test_reexport_and_unimported_modules(self) -> None:
        diagnostics = _run(
            performance.no_unused_module_exports,
            {
                "shared.module.ts": self.SHARED,
                "config.module.ts": "@Module({})\nexport class ConfigModule {}\n",
                "core.module.ts": (
                    "@Module({ imports: [SharedModule], exports: [SharedModule] })\n"
                    "export class CoreModule {}\n"
                ),
            },
        )

        assert diagnostics == []


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


class TestNoEval:
    def test_eval_and_function_constructor(self) -> None:
        diagnostics = _run(
            security.no_eval,
            {
                "e.ts": (
                    "eval('1 + 1');\n"
                    "const f = new Function('return 1');\n"
                    "sandbox.eval('x');\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [1, 2]


class TestNoHardcodedSecrets:
    def test_named_and_pattern_matches(self) -> None:
        token = "ghp_" + "a" * 36
        diagnostics = _run(
            security.no_hardcoded_secrets,
            {
                "s.ts": (
                    "const apiKey = 'abcd1234efgh5678';\n"
                    "const password = process.env.DB_PASSWORD;\n"
                    "const secret = 'changeme';\n"
                    f"const value = '{token}';\n"
                    "const options = { clientSecret: 'supersecretvalue1' };\n"
                ),
            },
        )

        assert [d.message for d in diagnostics] == [
            "Possible hardcoded GitHub personal access token detected.",
            "Variable 'apiKey' appears to contain a hardcoded secret.",
            "Property 'clientSecret' appears to contain a hardcoded secret.",
        ]

    def test_suspicious_value(self) -> None:
        assert security.is_suspicious_value("s3cr3t-v4lue")
        assert not security.is_suspicious_value("short")
        assert not security.is_suspicious_value("${DB_PASSWORD}")
        assert not security.is_suspicious_value("config.database.password")
        assert not security.is_suspicious_value("a value with spaces")


class TestNoWildcardCors:
    def test_wildcard_and_true(self) -> None:
        diagnostics = _run(
            security.no_wildcard_cors,
            {
                "main.ts": (
                    "app.enableCors({ origin: '*' });\n"
                    "app.enableCors({ origin: true });\n"
                    "app.enableCors({ origin: ['https://example.com'] });\n"
                    "app.enableCors({ 'origin': \"*\" });\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [1, 2, 4]
        assert diagnostics[0].message == (
            "CORS configured with origin: '*', allowing requests from any domain."
        )


class TestNoCsrfDisabled:
    def test_disabled_flags(self) -> None:
        diagnostics = _run(
            security.no_csrf_disabled,
            {
                "main.ts": (
                    "app.use(session({ csrf: false }));\n"
                    "const opts = { csrfProtection: false, 'csrf': true };\n"
                    "lusca({ csrf: true });\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [1, 2]
        assert diagnostics[1].message == (
            "CSRF protection explicitly disabled (csrfProtection: false)."
        )


class TestNoWeakCrypto:
    def test_md5_and_sha1(self) -> None:
        diagnostics = _run(
            security.no_weak_crypto,
            {
                "hash.ts": (
                    "crypto.createHash('MD5').update(value);\n"
                    "createHash('sha1');\n"
                    "createHash('sha256');\n"
                    "createHash(algorithm);\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [1, 2]
        assert diagnostics[0].message == "Weak hashing algorithm 'MD5' used in createHash()."


class TestNoUnsafeRawQuery:
    def test_interpolated_template_argument(self) -> None:
        diagnostics = _run(
            security.no_unsafe_raw_query,
            {
                "users.repository.ts": (
                    "prisma.$queryRawUnsafe(`SELECT * FROM users WHERE id = ${id}`);\n"
                    "prisma.$queryRaw`SELECT * FROM users WHERE id = ${id}`;\n"
                    "dataSource.query(`SELECT * FROM users WHERE name = ${name}`);\n"
                    "dataSource.query('SELECT * FROM users WHERE id = $1', [id]);\n"
                    "dataSource.query(`SELECT 1`);\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [1, 3]
        assert diagnostics[0].message == (
            "Raw SQL query '$queryRawUnsafe()' uses template literal interpolation, "
            "SQL injection risk."
        )
        assert diagnostics[0].severity == "error"


class TestNoExposedEnvVars:
    def test_env_access_inside_providers(self) -> None:
        diagnostics = _run(
            security.no_exposed_env_vars,
            {
                "mail.service.ts": (
                    "@Injectable()\n"
                    "export class MailService {\n"
                    "  private readonly host = process.env.MAIL_HOST;\n"
                    "  send() {\n"
                    "    return process.env.MAIL_PORT;\n"
                    "  }\n"
                    "}\n"
                    "export class Plain {\n"
                    "  port = process.env.PORT;\n"
                    "}\n"
                    "const top = process.env.TOP;\n"
                ),
            },
        )

        assert [d.line for d in diagnostics] == [3, 5]
        assert diagnostics[0].message == (
            "Direct 'process.env.MAIL_HOST' access in 'MailService'. Use ConfigService instead."
        )
