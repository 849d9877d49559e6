CACHE_FILE = 'GITVIS_CACHE_FILE'
COMPARE_DELAY_MS = 'GITVIS_COMPARE_DELAY_MS'
GITHUB_DOMAIN = 'GITVIS_GITHUB_DOMAIN'
GITHUB_TOKEN = 'GITHUB_TOKEN'
RELATIONSHIP_CACHE_TTL = 'GITVIS_RELATIONSHIP_CACHE_TTL'
XDG_CACHE_HOME = 'XDG_CACHE_HOME'
