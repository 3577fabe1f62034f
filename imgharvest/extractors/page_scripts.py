"""JavaScript evaluated inside rendered pages.

``EXTRACT_IMAGES_JS`` collects images in one pass and receives the lazy
attribute list and icon rules from ``extractors.common`` so both extraction
paths classify identically.
"""

from __future__ import annotations

# Selector that signals image-bearing content has rendered
IMAGE_READY_SELECTOR = "img, svg, picture, object[data], [style*='url(']"

SCROLL_HEIGHT_JS = "() => Math.max(document.body ? document.body.scrollHeight : 0, document.documentElement.scrollHeight)"
SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.documentElement.scrollHeight)"
SCROLL_TO_TOP_JS = "() => window.scrollTo(0, 0)"

EXTRACT_IMAGES_JS = """
({ lazyAttributes, iconRules }) => {
    const seen = new Set();
    const images = [];
    const svgs = [];

    const add = (raw, source, extra) => {
        if (!raw) return;
        const value = String(raw).trim();
        const lower = value.toLowerCase();
        if (!value || lower.startsWith('data:') || lower.startsWith('javascript:')) return;
        let url;
        try {
            url = new URL(value, document.baseURI).href;
        } catch (e) {
            return;
        }
        if (seen.has(url)) return;
        seen.add(url);
        images.push(Object.assign({ url: url, source: source }, extra || {}));
    };

    const lastCandidate = (srcset) => {
        const parts = srcset.split(',').map((p) => p.trim()).filter(Boolean);
        if (!parts.length) return null;
        return parts[parts.length - 1].split(/\\s+/)[0];
    };

    const firstCandidate = (value) => value.split(',')[0].trim().split(/\\s+/)[0];

    // Rendered <img>: resolved source, then lazy attributes, then srcset
    document.querySelectorAll('img').forEach((img) => {
        let src = img.currentSrc || img.getAttribute('src');
        if (!src) {
            for (const name of lazyAttributes) {
                const value = img.getAttribute(name);
                if (value) {
                    src = firstCandidate(value);
                    break;
                }
            }
        }
        if (!src) {
            const srcset = img.getAttribute('srcset');
            if (srcset) src = lastCandidate(srcset);
        }
        add(src, 'img', { alt: img.getAttribute('alt') || null });
    });

    // Computed backgrounds, including ::before / ::after
    const urlPattern = /url\\(\\s*(['"]?)(.*?)\\1\\s*\\)/gi;
    const addBackgrounds = (value) => {
        if (!value || value === 'none') return;
        let match;
        urlPattern.lastIndex = 0;
        while ((match = urlPattern.exec(value)) !== null) {
            add(match[2], 'background');
        }
    };
    document.querySelectorAll('*').forEach((el) => {
        addBackgrounds(getComputedStyle(el).backgroundImage);
        addBackgrounds(getComputedStyle(el, '::before').backgroundImage);
        addBackgrounds(getComputedStyle(el, '::after').backgroundImage);
    });

    // Inline SVG (outermost only)
    document.querySelectorAll('svg').forEach((svg) => {
        if (svg.parentElement && svg.parentElement.closest('svg')) return;
        svgs.push({
            content: svg.outerHTML,
            width: svg.getAttribute('width'),
            height: svg.getAttribute('height'),
        });
    });

    // <object data> images
    const imageExt = /\\.(apng|avif|bmp|gif|ico|jfif|jpe?g|png|svg|tiff?|webp)([?#].*)?$/i;
    document.querySelectorAll('object[data]').forEach((obj) => {
        const data = obj.getAttribute('data');
        const type = (obj.getAttribute('type') || '').toLowerCase();
        if (type.startsWith('image/') || imageExt.test(data)) add(data, 'object');
    });

    // Icons and social previews
    for (const rule of iconRules) {
        document.querySelectorAll(rule.selector).forEach((el) => {
            const extra = { alt: rule.alt };
            const sizes = /^\\s*(\\d+)\\s*[xX]\\s*(\\d+)/.exec(el.getAttribute('sizes') || '');
            if (sizes) {
                extra.width = parseInt(sizes[1], 10);
                extra.height = parseInt(sizes[2], 10);
            }
            add(el.getAttribute(rule.attribute), 'favicon', extra);
        });
    }

    return {
        images: images,
        svgs: svgs,
        head: document.head ? document.head.outerHTML : '',
    };
}
"""
