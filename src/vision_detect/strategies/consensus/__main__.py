"""Allow running as: python -m vision_detect.strategies.consensus"""

import asyncio


def _main() -> None:
    # Import here to avoid the double-import warning when running
    # python -m vision_detect.strategies.consensus.consensus
    from .consensus import main

    asyncio.run(main())


if __name__ == "__main__":
    _main()
