# pdf_processor.py
import asyncio
import functools as _functools
from typing import Optional

from PIL import Image
from pdf2image import convert_from_bytes

from config import thread_pool
from logging_utils import RosterLogger, component_logger, log_event

logger = component_logger("pdf_processor")
timer = RosterLogger(logger)


class PDFProcessor:
    @staticmethod
    async def first_page(pdf_bytes: bytes, dpi: int = 200) -> Optional[Image.Image]:
        """Render page 1 of a PDF on the worker pool. Later pages are ignored."""
        timer.start_timer("pdf_conversion")
        try:
            pages = await asyncio.get_running_loop().run_in_executor(
                thread_pool,
                _functools.partial(
                    convert_from_bytes,
                    pdf_bytes,
                    dpi=dpi,
                    fmt="PNG",
                    first_page=1,
                    last_page=1,
                ),
            )
        finally:
            timer.end_timer("pdf_conversion")

        log_event(logger, "pdf_converted", pages=len(pages), dpi=dpi)
        return pages[0] if pages else None
