"""Provider classification of env variable names."""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Pattern, Sequence, Tuple

from shipkey.config.domains.models import ProviderConfig

FALLBACK_PROVIDER = "General"


@dataclass(frozen=True)
class ProviderRule:
    """Patterns identifying the keys issued by one provider."""
    name: str
    patterns: Tuple[Pattern, ...]
    guide_url: Optional[str] = None
    guide: Optional[str] = None

    def matches(self, key: str) -> bool:
        return any(pattern.search(key) for pattern in self.patterns)


def _rule(name: str, *patterns: str, guide_url: str = None, guide: str = None) -> ProviderRule:
    return ProviderRule(
        name=name,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        guide_url=guide_url,
        guide=guide,
    )


# Order matters: the first matching rule wins.
DEFAULT_RULES: Tuple[ProviderRule, ...] = (
    _rule("OpenRouter", r"OPENROUTER",
          guide_url="https://openrouter.ai/keys",
          guide="OpenRouter → Keys → Create Key"),
    _rule("OpenAI", r"OPENAI",
          guide_url="https://platform.openai.com/api-keys",
          guide="OpenAI Platform → API Keys → Create new secret key"),
    _rule("Anthropic", r"ANTHROPIC",
          guide_url="https://console.anthropic.com/settings/keys",
          guide="Anthropic Console → Settings → API Keys → Create Key"),
    _rule("Stripe", r"STRIPE",
          guide_url="https://dashboard.stripe.com/apikeys",
          guide="Stripe Dashboard → Developers → API Keys"),
    _rule("GitHub OAuth", r"GITHUB",
          guide_url="https://github.com/settings/developers",
          guide="GitHub → Settings → Developer settings → OAuth Apps"),
    _rule("fal.ai", r"FAL",
          guide_url="https://fal.ai/dashboard/keys",
          guide="fal.ai → Dashboard → Keys"),
    _rule("Database", r"DATABASE", r"^DB_"),
    _rule("Redis", r"REDIS"),
    _rule("Cloudflare", r"CLOUDFLARE",
          guide_url="https://dash.cloudflare.com/profile/api-tokens",
          guide="Cloudflare Dashboard → Profile → API Tokens → Create Token"),
    _rule("npm", r"^NPM",
          guide_url="https://www.npmjs.com/settings/~/tokens",
          guide="npmjs.com → Access Tokens → Generate New Token (Classic) → Publish"),
    _rule("Resend", r"RESEND",
          guide_url="https://resend.com/api-keys",
          guide="Resend → API Keys → Create API Key"),
    _rule("AWS", r"^AWS",
          guide_url="https://console.aws.amazon.com/iam/",
          guide="AWS Console → IAM → Users → Security credentials"),
    _rule("Vercel", r"VERCEL",
          guide_url="https://vercel.com/account/tokens",
          guide="Vercel → Account Settings → Tokens"),
    _rule("Fly", r"FLY",
          guide_url="https://fly.io/user/personal_access_tokens",
          guide="Fly.io → Account → Access Tokens"),
    _rule("Supabase", r"SUPABASE",
          guide_url="https://supabase.com/dashboard/project/_/settings/api",
          guide="Supabase → Project Settings → API"),
    _rule("Turso", r"TURSO",
          guide_url="https://turso.tech/app",
          guide="Turso → Dashboard → Database → Create Token"),
    _rule("Session", r"SESSION"),
)


class ProviderClassifier:
    """Maps env keys to providers using an ordered, immutable rule table."""

    def __init__(self, rules: Sequence[ProviderRule] = DEFAULT_RULES, fallback: str = FALLBACK_PROVIDER):
        self._rules = tuple(rules)
        self._by_name = {rule.name: rule for rule in self._rules}
        self.fallback = fallback

    @property
    def rules(self) -> Tuple[ProviderRule, ...]:
        return self._rules

    def rule_for(self, provider: str) -> Optional[ProviderRule]:
        return self._by_name.get(provider)

    def classify(self, key: str) -> str:
        """Return the provider of the first matching rule, or the fallback."""
        for rule in self._rules:
            if rule.matches(key):
                return rule.name
        return self.fallback

    def group_by_provider(self, keys: Iterable[str]) -> Dict[str, ProviderConfig]:
        """
        Classify keys and collect them per provider.

        Guide metadata is copied from the matching rule when a provider is
        first seen. A key is listed at most once per provider.

        Args:
            keys: Env variable names, in the order fields should appear

        Returns:
            Dict of provider name to ProviderConfig
        """
        result: Dict[str, ProviderConfig] = {}

        for key in keys:
            name = self.classify(key)
            provider = result.get(name)
            if provider is None:
                rule = self.rule_for(name)
                provider = ProviderConfig(
                    fields=[],
                    guide_url=rule.guide_url if rule else None,
                    guide=rule.guide if rule else None,
                )
                result[name] = provider
            if key not in provider.fields:
                provider.fields.append(key)

        return result


default_classifier = ProviderClassifier()


def guess_provider(key: str) -> str:
    return default_classifier.classify(key)


def group_by_provider(keys: Iterable[str]) -> Dict[str, ProviderConfig]:
    return default_classifier.group_by_provider(keys)
