"""Built-in provider directory and noise rules."""

from outage_radar.config.schemas import (
    NoiseRule,
    NoiseRules,
    ProviderConfig,
    ProvidersConfig,
    SourceFormat,
)


def _statuspage(
    provider_id: str, name: str, host: str, aliases: list[str] | None = None
) -> ProviderConfig:
    return ProviderConfig(
        id=provider_id,
        name=name,
        format=SourceFormat.STATUSPAGE,
        endpoints=[f"https://{host}/api/v2/summary.json"],
        status_url=f"https://{host}/",
        aliases=aliases or [],
    )


DEFAULT_PROVIDERS = ProvidersConfig(
    providers=[
        _statuspage("github", "GitHub", "www.githubstatus.com"),
        _statuspage("cloudflare", "Cloudflare", "www.cloudflarestatus.com"),
        _statuspage("openai", "OpenAI", "status.openai.com", ["chatgpt"]),
        ProviderConfig(
            id="zscaler",
            name="Zscaler",
            format=SourceFormat.STATUSPAGE,
            endpoints=["https://trust.zscaler.com/api/v2/summary.json"],
            status_url="https://trust.zscaler.com/",
            probe_url="https://status.zscaler.com/",
        ),
        _statuspage(
            "digitalocean",
            "DigitalOcean",
            "status.digitalocean.com",
            ["digital ocean"],
        ),
        _statuspage("netlify", "Netlify", "www.netlifystatus.com"),
        _statuspage("vercel", "Vercel", "www.vercel-status.com"),
        _statuspage(
            "atlassian",
            "Atlassian",
            "status.atlassian.com",
            ["jira", "confluence", "bitbucket"],
        ),
        ProviderConfig(
            id="aws",
            name="AWS",
            format=SourceFormat.RSS,
            endpoints=["https://status.aws.amazon.com/rss/all.rss"],
            status_url="https://health.aws.amazon.com/health/status",
            aliases=["amazon web services", "amazon"],
        ),
        ProviderConfig(
            id="azure",
            name="Azure",
            format=SourceFormat.RSS,
            endpoints=["https://azurestatuscdn.azureedge.net/en-us/status/feed/"],
            status_url="https://azure.status.microsoft/en-us/status",
            aliases=["microsoft azure", "microsoft"],
        ),
        ProviderConfig(
            id="gcp",
            name="Google Cloud",
            format=SourceFormat.ATOM,
            endpoints=["https://status.cloud.google.com/en/feed.atom"],
            status_url="https://status.cloud.google.com/",
            aliases=["google cloud", "google"],
        ),
    ]
)

# Keyword lists are hand-tuned per provider and expected to be overridden
# from noise.yaml; ambiguous matches should go through product review.
DEFAULT_NOISE_RULES = NoiseRules(
    rules=[
        NoiseRule(
            name="scheduled_maintenance",
            phrases=[
                "scheduled maintenance",
                "planned maintenance",
                "maintenance window",
                "scheduled upgrade",
            ],
            force_maintenance=True,
        ),
        NoiseRule(
            name="ip_range_advisory",
            phrases=[
                "ip range",
                "ip address range",
                "new ip addresses",
                "ip addition",
                "adding ip",
            ],
            force_maintenance=True,
        ),
        NoiseRule(
            name="capacity_expansion",
            phrases=["capacity expansion", "new data center", "datacenter expansion"],
            providers=["zscaler", "cloudflare"],
        ),
    ]
)
