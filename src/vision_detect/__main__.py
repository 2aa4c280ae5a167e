"""Allow running as: python -m vision_detect"""

from .cli import main

if __name__ == "__main__":
    main()
