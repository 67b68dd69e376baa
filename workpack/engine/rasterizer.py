"""
Rasterizer

Renders selected pages to JPEG: page logical size x scale gives the surface
size, the surface is filled white, the page is drawn over it and the result
is encoded. Surfaces come from a pluggable SurfaceFactory and exactly one is
alive at a time.
"""
import io
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from PIL import Image

from workpack.engine.document_loader import SourceDocument
from workpack.engine.errors import BackendUnavailable, RenderError
from workpack.models.extraction import PageCategory, RasterAsset, RasterImage

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


@dataclass
class DrawingSurface:
    """Off-screen RGB surface owned by a SurfaceFactory."""
    width: int
    height: int
    image: Optional[Image.Image] = None


class SurfaceFactory(ABC):
    """Creates, resizes and releases drawing surfaces for the rasterizer."""
    
    @abstractmethod
    def create(self, width: int, height: int) -> DrawingSurface:
        ...
    
    @abstractmethod
    def reset(self, surface: DrawingSurface, width: int, height: int) -> None:
        ...
    
    @abstractmethod
    def destroy(self, surface: DrawingSurface) -> None:
        ...


class PillowSurfaceFactory(SurfaceFactory):
    """Surfaces backed by white-filled Pillow RGB images."""
    
    def create(self, width: int, height: int) -> DrawingSurface:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid surface size {width}x{height}")
        return DrawingSurface(width=width, height=height, image=Image.new("RGB", (width, height), WHITE))
    
    def reset(self, surface: DrawingSurface, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid surface size {width}x{height}")
        if surface.image is not None:
            surface.image.close()
        surface.image = Image.new("RGB", (width, height), WHITE)
        surface.width = width
        surface.height = height
    
    def destroy(self, surface: DrawingSurface) -> None:
        if surface.image is not None:
            surface.image.close()
            surface.image = None


class Rasterizer:
    """
    Page -> JPEG renderer.
    
    Usage:
        rasterizer = Rasterizer()
        image = rasterizer.render(doc, 4)
        assets, skipped = rasterizer.convert_pages(doc, [4, 7], "uploads/job_1/drawings", PageCategory.DRAWING)
    """
    
    def __init__(
        self,
        surface_factory: Optional[SurfaceFactory] = None,
        scale: float = 2.0,
        jpeg_quality: int = 85,
    ):
        self.surface_factory = surface_factory or PillowSurfaceFactory()
        self.scale = scale
        self.jpeg_quality = jpeg_quality
    
    @classmethod
    def from_settings(cls, settings, surface_factory: Optional[SurfaceFactory] = None) -> "Rasterizer":
        return cls(
            surface_factory=surface_factory,
            scale=settings.raster_scale,
            jpeg_quality=settings.jpeg_quality,
        )
    
    def render(self, doc: SourceDocument, page_number: int, scale: Optional[float] = None) -> RasterImage:
        """
        Render one page.
        
        Args:
            doc: Loaded source document
            page_number: 1-indexed page number
            scale: Override of the default scale factor
            
        Returns:
            RasterImage with JPEG data
            
        Raises:
            RenderError: The page could not be drawn or encoded
        """
        scale = scale or self.scale
        backend = doc.backend
        
        try:
            page = doc.page(page_number)
            width_pt, height_pt = backend.page_size(page)
            surface = self.surface_factory.create(int(width_pt * scale), int(height_pt * scale))
        except BackendUnavailable:
            raise
        except Exception as e:
            raise RenderError(page_number, f"Page {page_number} could not be prepared: {e}") from e
        
        try:
            rendered = backend.render_rgba(page, scale)
            if rendered.size != (surface.width, surface.height):
                self.surface_factory.reset(surface, rendered.width, rendered.height)
            surface.image.paste(rendered, (0, 0), rendered)
            rendered.close()
            
            buffer = io.BytesIO()
            surface.image.save(buffer, format="JPEG", quality=self.jpeg_quality)
            return RasterImage(
                page_number=page_number,
                width=surface.width,
                height=surface.height,
                data=buffer.getvalue(),
            )
        except BackendUnavailable:
            raise
        except Exception as e:
            raise RenderError(page_number, f"Page {page_number} could not be rendered: {e}") from e
        finally:
            self.surface_factory.destroy(surface)
    
    def convert_pages(
        self,
        doc: SourceDocument,
        page_numbers: Iterable[int],
        output_dir: str,
        category: PageCategory,
    ) -> Tuple[List[RasterAsset], List[int]]:
        """
        Render pages to ``<output_dir>/<category>_page_<n>.jpg``.
        
        Returns:
            (assets in page order, skipped page numbers)
        """
        assets: List[RasterAsset] = []
        skipped: List[int] = []
        page_numbers = list(page_numbers)
        if not page_numbers:
            return assets, skipped
        
        os.makedirs(output_dir, exist_ok=True)
        
        try:
            for page_number in page_numbers:
                if not 1 <= page_number <= doc.page_count:
                    logger.warning(f"Skipping page {page_number}: out of range 1..{doc.page_count}")
                    skipped.append(page_number)
                    continue
                
                try:
                    image = self.render(doc, page_number)
                except RenderError as e:
                    logger.warning(f"Skipping page {page_number}: {e}")
                    skipped.append(page_number)
                    continue
                
                name = f"{category.value}_page_{page_number}.jpg"
                path = os.path.join(output_dir, name)
                try:
                    with open(path, "wb") as f:
                        f.write(image.data)
                except OSError as e:
                    logger.warning(f"Skipping page {page_number}: cannot write {path}: {e}")
                    skipped.append(page_number)
                    continue
                
                assets.append(RasterAsset(name=name, page_number=page_number, category=category, path=path))
                logger.info(f"Converted page {page_number} to {name} ({image.width}x{image.height})")
        except Exception:
            # Nothing written so far reaches the caller
            _remove_written(assets)
            raise
        
        return assets, skipped


def _remove_written(assets: List[RasterAsset]) -> None:
    for asset in assets:
        try:
            os.remove(asset.path)
        except OSError as e:
            logger.warning(f"Could not remove {asset.path}: {e}")
