"""Allow running as: python -m vision_detect.strategies.single"""

import asyncio


def _main() -> None:
    from .single import main

    asyncio.run(main())


if __name__ == "__main__":
    _main()
