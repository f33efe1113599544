"""Static detection tables for the repository classifier.

Plain names match file basenames case-insensitively, ``name/`` entries match
directories anywhere in the tree, and ``*.ext`` entries match extensions.
"""

from dataclasses import dataclass

from repolens.models.classification import ProjectType

# File presence per project type
TYPE_FILE_PATTERNS: dict[ProjectType, tuple[str, ...]] = {
    ProjectType.BACKEND: (
        "package.json",
        "requirements.txt",
        "go.mod",
        "Cargo.toml",
        "pom.xml",
        "build.gradle",
        "Gemfile",
        "composer.json",
    ),
    ProjectType.FRONTEND: (
        "package.json",
        "next.config.js",
        "nuxt.config.js",
        "vite.config.ts",
        "webpack.config.js",
        "angular.json",
        "svelte.config.js",
    ),
    ProjectType.MOBILE: (
        "ios/",
        "android/",
        "App.tsx",
        "pubspec.yaml",
        "Podfile",
        "build.gradle",
        "capacitor.config.json",
    ),
    ProjectType.INFRA_AS_CODE: (
        "main.tf",
        "terraform/",
        "Pulumi.yaml",
        "ansible/",
        "kubernetes/",
        "k8s/",
        "helm/",
        "docker-compose.yml",
    ),
    ProjectType.LIBRARY: (
        "package.json",
        "setup.py",
        "pyproject.toml",
        "Cargo.toml",
        "lib/",
    ),
    ProjectType.MONOREPO: (
        "pnpm-workspace.yaml",
        "lerna.json",
        "nx.json",
        "turbo.json",
        "packages/",
        "apps/",
    ),
}

FILE_NAME_CONFIDENCE = 0.7
DIRECTORY_CONFIDENCE = 0.6


class Ecosystem:
    """Manifest ecosystems."""

    NPM = "npm"
    PYTHON = "python"
    GO = "go"
    RUST = "rust"


@dataclass(frozen=True)
class DependencyRule:
    """A framework dependency that votes for a project type.

    Attributes:
        name: Indicator name
        ecosystem: Manifest ecosystem the dependency lives in
        packages: Dependency names, any of which triggers the rule
        confidence: Indicator confidence
        project_type: Type the indicator votes for
    """

    name: str
    ecosystem: str
    packages: tuple[str, ...]
    confidence: float
    project_type: ProjectType


DEPENDENCY_RULES: tuple[DependencyRule, ...] = (
    # JavaScript frontend
    DependencyRule("react", Ecosystem.NPM, ("react", "react-dom"), 0.8, ProjectType.FRONTEND),
    DependencyRule("vue", Ecosystem.NPM, ("vue",), 0.8, ProjectType.FRONTEND),
    DependencyRule("@angular/core", Ecosystem.NPM, ("@angular/core",), 0.8, ProjectType.FRONTEND),
    DependencyRule("svelte", Ecosystem.NPM, ("svelte",), 0.8, ProjectType.FRONTEND),
    DependencyRule("next", Ecosystem.NPM, ("next",), 0.7, ProjectType.FRONTEND),
    # JavaScript backend
    DependencyRule("express", Ecosystem.NPM, ("express",), 0.8, ProjectType.BACKEND),
    DependencyRule("@nestjs/core", Ecosystem.NPM, ("@nestjs/core",), 0.9, ProjectType.BACKEND),
    DependencyRule("fastify", Ecosystem.NPM, ("fastify",), 0.8, ProjectType.BACKEND),
    DependencyRule("koa", Ecosystem.NPM, ("koa",), 0.8, ProjectType.BACKEND),
    # JavaScript mobile
    DependencyRule("react-native", Ecosystem.NPM, ("react-native",), 0.95, ProjectType.MOBILE),
    DependencyRule(
        "ionic",
        Ecosystem.NPM,
        ("@ionic/angular", "@ionic/react", "@ionic/vue"),
        0.9,
        ProjectType.MOBILE,
    ),
    DependencyRule(
        "@capacitor/core", Ecosystem.NPM, ("@capacitor/core",), 0.85, ProjectType.MOBILE
    ),
    # Monorepo tooling
    DependencyRule(
        "monorepo-tool", Ecosystem.NPM, ("lerna", "nx", "turbo"), 0.9, ProjectType.MONOREPO
    ),
    # Python
    DependencyRule("django", Ecosystem.PYTHON, ("django",), 0.9, ProjectType.BACKEND),
    DependencyRule("flask", Ecosystem.PYTHON, ("flask",), 0.85, ProjectType.BACKEND),
    DependencyRule("fastapi", Ecosystem.PYTHON, ("fastapi",), 0.9, ProjectType.BACKEND),
    DependencyRule(
        "python-mobile", Ecosystem.PYTHON, ("kivy", "beeware", "toga"), 0.8, ProjectType.MOBILE
    ),
    # Go
    DependencyRule("gin", Ecosystem.GO, ("github.com/gin-gonic/gin",), 0.9, ProjectType.BACKEND),
    DependencyRule("fiber", Ecosystem.GO, ("github.com/gofiber/fiber",), 0.9, ProjectType.BACKEND),
    DependencyRule("echo", Ecosystem.GO, ("github.com/labstack/echo",), 0.9, ProjectType.BACKEND),
    # Rust
    DependencyRule("actix-web", Ecosystem.RUST, ("actix-web",), 0.9, ProjectType.BACKEND),
    DependencyRule("rocket", Ecosystem.RUST, ("rocket",), 0.9, ProjectType.BACKEND),
    DependencyRule("tauri", Ecosystem.RUST, ("tauri",), 0.85, ProjectType.FRONTEND),
)

# Python web frameworks; a pyproject declaring one of these is not a plain library
PYTHON_WEB_FRAMEWORKS = frozenset({"django", "flask", "fastapi", "starlette", "tornado", "aiohttp"})

# Conventional roots whose children are monorepo members
MONOREPO_ROOTS: tuple[str, ...] = ("packages", "apps", "libs", "modules")


@dataclass(frozen=True)
class TechPattern:
    """Detection patterns for one technology tag."""

    files: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


TECH_STACK_PATTERNS: dict[str, TechPattern] = {
    # Languages
    "typescript": TechPattern(files=("tsconfig.json", "*.ts", "*.tsx")),
    "javascript": TechPattern(files=("*.js", "*.jsx", ".eslintrc.js")),
    "python": TechPattern(files=("*.py", "requirements.txt", "setup.py", "pyproject.toml")),
    "java": TechPattern(files=("*.java", "pom.xml", "build.gradle")),
    "go": TechPattern(files=("*.go", "go.mod", "go.sum")),
    "rust": TechPattern(files=("*.rs", "Cargo.toml")),
    "csharp": TechPattern(files=("*.cs", "*.csproj", "*.sln")),
    "ruby": TechPattern(files=("*.rb", "Gemfile")),
    "php": TechPattern(files=("*.php", "composer.json")),
    "swift": TechPattern(files=("*.swift", "Package.swift")),
    "kotlin": TechPattern(files=("*.kt", "build.gradle.kts")),
    # Backend frameworks
    "express": TechPattern(dependencies=("express",)),
    "nestjs": TechPattern(dependencies=("@nestjs/core",)),
    "fastify": TechPattern(dependencies=("fastify",)),
    "django": TechPattern(files=("manage.py", "settings.py"), dependencies=("django",)),
    "flask": TechPattern(dependencies=("flask",)),
    "fastapi": TechPattern(dependencies=("fastapi",)),
    "spring": TechPattern(files=("pom.xml",), dependencies=("spring-boot",)),
    "rails": TechPattern(files=("Gemfile",), dependencies=("rails",)),
    "laravel": TechPattern(files=("artisan", "composer.json")),
    "gin": TechPattern(dependencies=("github.com/gin-gonic/gin",)),
    "actix": TechPattern(dependencies=("actix-web",)),
    # Frontend frameworks
    "react": TechPattern(dependencies=("react", "react-dom")),
    "vue": TechPattern(dependencies=("vue",)),
    "angular": TechPattern(files=("angular.json",), dependencies=("@angular/core",)),
    "svelte": TechPattern(dependencies=("svelte",)),
    "nextjs": TechPattern(dependencies=("next",)),
    "nuxt": TechPattern(dependencies=("nuxt",)),
    "remix": TechPattern(dependencies=("@remix-run/react",)),
    "gatsby": TechPattern(dependencies=("gatsby",)),
    # Mobile
    "react-native": TechPattern(dependencies=("react-native",)),
    "flutter": TechPattern(files=("pubspec.yaml",)),
    "swiftui": TechPattern(files=("*.swift",)),
    "jetpack-compose": TechPattern(files=("build.gradle.kts",)),
    "ionic": TechPattern(dependencies=("@ionic/angular", "@ionic/react", "@ionic/vue")),
    "capacitor": TechPattern(dependencies=("@capacitor/core",)),
    # Databases
    "postgresql": TechPattern(dependencies=("pg", "psycopg2", "psycopg2-binary", "postgres")),
    "mysql": TechPattern(dependencies=("mysql", "mysql2", "pymysql")),
    "mongodb": TechPattern(dependencies=("mongodb", "mongoose", "pymongo")),
    "redis": TechPattern(dependencies=("redis", "ioredis")),
    "elasticsearch": TechPattern(dependencies=("@elastic/elasticsearch", "elasticsearch")),
    "neo4j": TechPattern(dependencies=("neo4j-driver",)),
    "dynamodb": TechPattern(dependencies=("@aws-sdk/client-dynamodb",)),
    "sqlite": TechPattern(dependencies=("sqlite3", "better-sqlite3")),
    # Infrastructure
    "docker": TechPattern(files=("Dockerfile", "docker-compose.yml")),
    "kubernetes": TechPattern(files=("k8s/", "kubernetes/")),
    "terraform": TechPattern(files=("*.tf", "main.tf")),
    "pulumi": TechPattern(files=("Pulumi.yaml",)),
    "ansible": TechPattern(files=("ansible/", "playbook.yml")),
    "helm": TechPattern(files=("Chart.yaml", "values.yaml")),
    # Cloud
    "aws": TechPattern(files=("serverless.yml", "sam.yaml"), dependencies=("@aws-sdk/core", "boto3")),
    "gcp": TechPattern(files=("app.yaml",), dependencies=("@google-cloud/core",)),
    "azure": TechPattern(dependencies=("@azure/core-rest-pipeline",)),
    "vercel": TechPattern(files=("vercel.json",)),
    "netlify": TechPattern(files=("netlify.toml",)),
    "cloudflare": TechPattern(files=("wrangler.toml",)),
    # Testing
    "jest": TechPattern(dependencies=("jest",)),
    "vitest": TechPattern(dependencies=("vitest",)),
    "pytest": TechPattern(dependencies=("pytest",)),
    "junit": TechPattern(dependencies=("junit",)),
    "mocha": TechPattern(dependencies=("mocha",)),
    "cypress": TechPattern(dependencies=("cypress",)),
    "playwright": TechPattern(dependencies=("@playwright/test",)),
    # Other
    "graphql": TechPattern(files=("*.graphql", "*.gql"), dependencies=("graphql", "apollo-server")),
    "rest": TechPattern(files=("openapi.yaml", "swagger.json")),
    "grpc": TechPattern(files=("*.proto",), dependencies=("@grpc/grpc-js",)),
    "websocket": TechPattern(dependencies=("ws", "socket.io")),
    "openapi": TechPattern(files=("openapi.yaml", "openapi.json", "swagger.yaml")),
}
