"""
Worker 진입점

실행 방법:
    python -m worker
"""

import asyncio

from worker.bootstrap import main

if __name__ == "__main__":
    asyncio.run(main())
