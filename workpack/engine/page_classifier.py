"""
Page Classifier

Assigns each PageSignature a PageCategory using an explicit, ordered rule
table. The first matching rule wins, so form detection masks every visual
rule and drawing keywords beat the map and photo heuristics.

Classification reads only page content, never page position.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from workpack.models.extraction import ClassificationResult, PageCategory, PageSignature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table: if ``predicate`` holds, the page is ``category``."""
    name: str
    category: PageCategory
    predicate: Callable[[PageSignature], bool]


def _compile(patterns: Iterable[str]) -> "re.Pattern[str]":
    return re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)


class PageClassifier:
    """
    Rule-based page classifier.
    
    Keyword lists are regex fragments matched anywhere in the page text.
    Thresholds default to the values tuned for utility work packages.
    
    Usage:
        classifier = PageClassifier()
        category = classifier.classify(signature)
        result = classifier.classify_pages(signatures, total_pages=doc.page_count)
    """
    
    # Data sheets; never extracted as visual assets
    DEFAULT_FORM_KEYWORDS = [
        r"face sheet", r"crew material", r"equipment information", r"checklist",
        r"feedback to estimating", r"tag sheet", r"totals as of", r"crew instruction",
        r"sign.?off", r"billing", r"progress billing", r"paving form",
        r"environmental release", r"best management", r"job package checklist",
        r"utility standard", r"contractor work checklist", r"no parking sign",
        r"tree trimming", r"usa ticket",
    ]
    
    DEFAULT_DRAWING_KEYWORDS = [
        r"pole sheet drawing", r"plan view", r"construction drawing", r"schematic",
        r"diagram", r"top view.*services", r"include services with addresses",
    ]
    
    DEFAULT_MAP_KEYWORDS = [
        r"circuit map", r"distribution map", r"location map", r"area map", r"cirmap",
        r"vicinity map", r"site map", r"google map", r"street map", r"aerial",
        r"satellite", r"bird.?s?.?eye", r"overhead view", r"project location",
        r"job location", r"work location", r"map view", r"\bgis\b", r"parcel map",
        r"plat map", r"survey map", r"topographic", r"topo map",
    ]
    
    DEFAULT_PHOTO_KEYWORDS = [
        r"picture", r"full pole", r"photos:", r"field photo", r"pictures:",
    ]
    
    DEFAULT_FIELD_NOTE_KEYWORDS = [
        r"field notes", r"field date", r"oh field notes", r"confidential.*field",
    ]
    
    # Street/scale vocabulary that suggests a map when paired with an image
    DEFAULT_LOCATION_KEYWORDS = [
        r"street", r"road", r"ave", r"avenue", r"blvd", r"boulevard", r"highway",
        r"hwy", r"interstate", r"freeway", r"county", r"city of", r"state of",
        r"latitude", r"longitude", r"coordinates", r"north", r"south", r"east",
        r"west", r"scale:", r"feet", r"meters", r"miles",
    ]
    
    WATERMARK_WORD = "confidential"
    
    def __init__(
        self,
        form_keywords: Optional[List[str]] = None,
        drawing_keywords: Optional[List[str]] = None,
        map_keywords: Optional[List[str]] = None,
        photo_keywords: Optional[List[str]] = None,
        field_note_keywords: Optional[List[str]] = None,
        location_keywords: Optional[List[str]] = None,
        image_only_text_limit: int = 50,
        image_heavy_text_limit: int = 150,
        map_short_text_limit: int = 500,
        watermark_text_limit: int = 20,
    ):
        """
        Initialize PageClassifier with configurable vocabularies and thresholds.
        
        Args:
            form_keywords: Form/data-sheet title patterns
            drawing_keywords: Construction drawing patterns
            map_keywords: Map patterns
            photo_keywords: Photo page patterns
            field_note_keywords: Field-note section patterns
            location_keywords: Location vocabulary for the map heuristic
            image_only_text_limit: Text below this on an image page is "image-only"
            image_heavy_text_limit: Text below this on an image page is "image-heavy"
            map_short_text_limit: Map heuristic applies only below this text length
            watermark_text_limit: Watermark-only pages are shorter than this
        """
        self._form = _compile(form_keywords or self.DEFAULT_FORM_KEYWORDS)
        self._drawing = _compile(drawing_keywords or self.DEFAULT_DRAWING_KEYWORDS)
        self._map = _compile(map_keywords or self.DEFAULT_MAP_KEYWORDS)
        self._photo = _compile(photo_keywords or self.DEFAULT_PHOTO_KEYWORDS)
        self._field_notes = _compile(field_note_keywords or self.DEFAULT_FIELD_NOTE_KEYWORDS)
        self._location = _compile(location_keywords or self.DEFAULT_LOCATION_KEYWORDS)
        
        self.image_only_text_limit = image_only_text_limit
        self.image_heavy_text_limit = image_heavy_text_limit
        self.map_short_text_limit = map_short_text_limit
        self.watermark_text_limit = watermark_text_limit
        
        self.rules: List[ClassificationRule] = self._build_rules()
        
        logger.info(
            f"PageClassifier initialized: {len(self.rules)} rules, thresholds "
            f"image_only={image_only_text_limit}, image_heavy={image_heavy_text_limit}, "
            f"map_short={map_short_text_limit}, watermark={watermark_text_limit}"
        )
    
    @classmethod
    def from_settings(cls, settings) -> "PageClassifier":
        return cls(
            image_only_text_limit=settings.image_only_text_limit,
            image_heavy_text_limit=settings.image_heavy_text_limit,
            map_short_text_limit=settings.map_short_text_limit,
            watermark_text_limit=settings.watermark_text_limit,
        )
    
    # -------------------------------------------------------------------------
    # Predicates
    # -------------------------------------------------------------------------
    
    def is_form(self, sig: PageSignature) -> bool:
        return bool(self._form.search(sig.text_lower))
    
    def has_drawing_keywords(self, sig: PageSignature) -> bool:
        return bool(self._drawing.search(sig.text_lower))
    
    def has_map_keywords(self, sig: PageSignature) -> bool:
        return bool(self._map.search(sig.text_lower))
    
    def has_photo_keywords(self, sig: PageSignature) -> bool:
        return bool(self._photo.search(sig.text_lower))
    
    def has_field_notes(self, sig: PageSignature) -> bool:
        return bool(self._field_notes.search(sig.text_lower))
    
    def looks_like_map(self, sig: PageSignature) -> bool:
        """Image + location vocabulary + short text, and nothing photo-like."""
        return (
            sig.has_images
            and bool(self._location.search(sig.text_lower))
            and sig.text_length < self.map_short_text_limit
            and not self.has_photo_keywords(sig)
            and not self.has_field_notes(sig)
        )
    
    def is_watermark_only(self, sig: PageSignature) -> bool:
        return sig.text_length < self.watermark_text_limit and self.WATERMARK_WORD in sig.text_lower
    
    def is_image_dominant(self, sig: PageSignature) -> bool:
        """Image page with little or no text (image-only, image-heavy or zero text)."""
        if not sig.has_images:
            return False
        return (
            sig.text_length < self.image_only_text_limit
            or sig.text_length < self.image_heavy_text_limit
            or sig.text_length == 0
        )
    
    def _build_rules(self) -> List[ClassificationRule]:
        return [
            ClassificationRule("form_keywords", PageCategory.FORM, self.is_form),
            ClassificationRule("drawing_keywords", PageCategory.DRAWING, self.has_drawing_keywords),
            ClassificationRule("map_keywords", PageCategory.MAP, self.has_map_keywords),
            ClassificationRule("map_layout", PageCategory.MAP, self.looks_like_map),
            ClassificationRule("photo_keywords", PageCategory.PHOTO, self.has_photo_keywords),
            ClassificationRule("field_notes", PageCategory.PHOTO, self.has_field_notes),
            ClassificationRule("confidential_watermark", PageCategory.PHOTO, self.is_watermark_only),
            ClassificationRule("image_dominant", PageCategory.PHOTO, self.is_image_dominant),
        ]
    
    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------
    
    def matching_rule(self, sig: PageSignature) -> Optional[ClassificationRule]:
        """Return the first rule that matches, or None."""
        for rule in self.rules:
            if rule.predicate(sig):
                return rule
        return None
    
    def classify(self, sig: PageSignature) -> PageCategory:
        """
        Classify one page.
        
        Args:
            sig: PageSignature of the page
            
        Returns:
            PageCategory (UNCLASSIFIED when no rule matches)
        """
        rule = self.matching_rule(sig)
        category = rule.category if rule else PageCategory.UNCLASSIFIED
        logger.debug(
            f"Page {sig.page_number}: {category.value} "
            f"(rule={rule.name if rule else 'none'})"
        )
        return category
    
    def classify_pages(self, signatures: Iterable[PageSignature], total_pages: int) -> ClassificationResult:
        """
        Classify every analyzed page of a document.
        
        Args:
            signatures: Signatures of the pages that could be analyzed; when a
                page number repeats, its first signature wins
            total_pages: Page count of the whole document
            
        Returns:
            ClassificationResult with sorted, unique, pairwise disjoint lists
        """
        buckets = {
            PageCategory.DRAWING: set(),
            PageCategory.MAP: set(),
            PageCategory.PHOTO: set(),
            PageCategory.FORM: set(),
        }
        classified = set()
        for sig in signatures:
            if sig.page_number in classified:
                logger.warning(f"Page {sig.page_number}: duplicate signature ignored")
                continue
            classified.add(sig.page_number)
            category = self.classify(sig)
            if category in buckets:
                buckets[category].add(sig.page_number)
        
        result = ClassificationResult(
            drawings=sorted(buckets[PageCategory.DRAWING]),
            maps=sorted(buckets[PageCategory.MAP]),
            photos=sorted(buckets[PageCategory.PHOTO]),
            forms=sorted(buckets[PageCategory.FORM]),
            total_pages=total_pages,
        )
        logger.info(
            f"Page analysis complete: drawings={len(result.drawings)}, maps={len(result.maps)}, "
            f"photos={len(result.photos)}, forms={len(result.forms)}"
        )
        return result

