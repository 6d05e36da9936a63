"""Command line interface for checking the effective configuration"""
from . import settings_conf
from pathlib import Path

SECRET_KEYS = {'jwt_secret'}

def _mask(key: str, value) -> str:
    if key in SECRET_KEYS and value:
        return f"{str(value)[:4]}****"
    if key == 'db_url' and '@' in str(value):
        # Hide credentials embedded in the URL
        scheme, _, rest = str(value).partition('://')
        return f"{scheme}://****@{rest.split('@', 1)[1]}"
    return str(value)

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in sorted(settings_conf.items()):
        print(f"{key}: {_mask(key, value)}")

    # Save example configuration file
    example = Path("settings.conf.example")
    if not example.exists():
        with open(example, "w") as f:
            f.write("""[DEFAULT]
# Database connection string
db_url = postgresql://root@localhost:26257/marketplace?sslmode=disable
# Secret used to sign session tokens
jwt_secret = change-me
# Directory uploaded model files are stored in
upload_root = uploads
""")
        print(f"\nWrote {example}")

if __name__ == "__main__":
    main()
