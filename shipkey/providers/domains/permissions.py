"""Permission hints inferred from project signals."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from shipkey.config.domains.models import PermissionHint, ProviderConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionRule:
    """When `signal` is observed, recommend `permission` for `provider`."""
    signal: str
    provider: str
    permission: str


DEPENDENCY_RULES: Tuple[PermissionRule, ...] = (
    PermissionRule("stripe", "Stripe", "Restricted key: write access to the resources the app uses"),
    PermissionRule("openai", "OpenAI", "Project API key with model access"),
    PermissionRule("@anthropic-ai/sdk", "Anthropic", "API key (workspace scoped)"),
    PermissionRule("anthropic", "Anthropic", "API key (workspace scoped)"),
    PermissionRule("resend", "Resend", "Sending access"),
    PermissionRule("@supabase/supabase-js", "Supabase", "anon key (client) / service_role key (server only)"),
    PermissionRule("supabase", "Supabase", "anon key (client) / service_role key (server only)"),
    PermissionRule("@libsql/client", "Turso", "Database token (read/write)"),
    PermissionRule("@aws-sdk/client-s3", "AWS", "IAM policy: s3:GetObject, s3:PutObject"),
    PermissionRule("boto3", "AWS", "IAM user with least-privilege policy"),
    PermissionRule("redis", "Redis", "ACL user with read/write on app keys"),
    PermissionRule("ioredis", "Redis", "ACL user with read/write on app keys"),
)

BINDING_RULES: Tuple[PermissionRule, ...] = (
    PermissionRule("kv_namespaces", "Cloudflare", "Workers KV Storage: Edit"),
    PermissionRule("r2_buckets", "Cloudflare", "Workers R2 Storage: Edit"),
    PermissionRule("d1_databases", "Cloudflare", "D1: Edit"),
    PermissionRule("queues", "Cloudflare", "Queues: Edit"),
    PermissionRule("ai", "Cloudflare", "Workers AI: Read"),
    PermissionRule("durable_objects", "Cloudflare", "Workers Scripts: Edit"),
    PermissionRule("vectorize", "Cloudflare", "Vectorize: Edit"),
)

WRANGLER_FILE_RULE = PermissionRule("wrangler", "Cloudflare", "Workers Scripts: Edit")

# Matched as substrings of CI `run:` commands; more specific commands first.
COMMAND_RULES: Tuple[PermissionRule, ...] = (
    PermissionRule("wrangler pages deploy", "Cloudflare", "Cloudflare Pages: Edit"),
    PermissionRule("wrangler d1", "Cloudflare", "D1: Edit"),
    PermissionRule("wrangler deploy", "Cloudflare", "Workers Scripts: Edit"),
    PermissionRule("npm publish", "npm", "Automation token with publish access"),
    PermissionRule("vercel deploy", "Vercel", "Token scoped to the deploying team"),
    PermissionRule("vercel --prod", "Vercel", "Token scoped to the deploying team"),
    PermissionRule("fly deploy", "Fly", "Deploy token for the app (fly tokens create deploy)"),
)


class PermissionInferencer:
    """Annotates already-classified providers with advisory permission hints."""

    def __init__(
        self,
        dependency_rules: Iterable[PermissionRule] = DEPENDENCY_RULES,
        binding_rules: Iterable[PermissionRule] = BINDING_RULES,
        command_rules: Iterable[PermissionRule] = COMMAND_RULES,
        wrangler_file_rule: PermissionRule = WRANGLER_FILE_RULE,
    ):
        self.dependency_rules = tuple(dependency_rules)
        self.binding_rules = tuple(binding_rules)
        self.command_rules = tuple(command_rules)
        self.wrangler_file_rule = wrangler_file_rule

    @staticmethod
    def _add(providers: Dict[str, ProviderConfig], rule: PermissionRule, source: str) -> None:
        provider = providers.get(rule.provider)
        if provider is None:
            return
        if any(hint.permission == rule.permission for hint in provider.permissions):
            return
        provider.permissions.append(PermissionHint(permission=rule.permission, source=source))

    def infer(
        self,
        providers: Dict[str, ProviderConfig],
        dependencies: Iterable[str] = (),
        bindings: Iterable[str] = (),
        wrangler_file: Optional[str] = None,
        commands: Iterable[str] = (),
    ) -> Dict[str, ProviderConfig]:
        """
        Attach permission hints to matching providers, in place.

        Providers and fields are never added or removed; signals with no
        matching provider are ignored.

        Args:
            providers: Classified providers to annotate
            dependencies: Dependency names from package manifests
            bindings: Binding kinds declared in wrangler config
            wrangler_file: Wrangler config path, when one exists
            commands: Deploy commands found in CI workflows

        Returns:
            The same providers mapping
        """
        dependency_set = {d.lower() for d in dependencies}
        for rule in self.dependency_rules:
            if rule.signal in dependency_set:
                self._add(providers, rule, f"package: {rule.signal}")

        binding_set = set(bindings)
        wrangler_label = wrangler_file or "wrangler.toml"
        for rule in self.binding_rules:
            if rule.signal in binding_set:
                self._add(providers, rule, f"{wrangler_label}: {rule.signal}")

        if wrangler_file:
            self._add(providers, self.wrangler_file_rule, wrangler_file)

        for command in commands:
            for rule in self.command_rules:
                if rule.signal in command:
                    self._add(providers, rule, f"workflow: {rule.signal}")
                    break

        return providers


default_inferencer = PermissionInferencer()


def infer_permissions(providers, dependencies=(), bindings=(), wrangler_file=None, commands=()):
    return default_inferencer.infer(providers, dependencies, bindings, wrangler_file, commands)
