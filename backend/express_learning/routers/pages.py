from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse

router = APIRouter(tags=["pages"])

MANIFEST_JSON = {
	"name": "Express Learning Platform",
	"short_name": "ExpressLearn",
	"description": "Learn anything fast with visual, just-in-time chapters.",
	"start_url": "/",
	"display": "standalone",
	"background_color": "#ffffff",
	"theme_color": "#f59e0b",
	"icons": [
		{"src": "/icon-192.png", "sizes": "192x192", "type": "image/png"},
		{"src": "/icon-512.png", "sizes": "512x512", "type": "image/png"},
	],
}

PAGES_MARKDOWN = {
	"privacy": """
## Privacy

Express Learning stores the topic you type, the preferences you pick (time available, level,
language, mode) and the chapters generated for you. If you upload a PDF, its contents are stored
with the plan so later chapters can be written from the same source.

Your topic and document are sent to the configured AI provider to generate content. Plans made
without an account are reachable by anyone holding the link. Signed-in users can list their own
plans in the library.

We do not sell your data. Ask us to delete a plan through the contact page.
""",
	"contact": """
## Contact

Questions, bug reports or deletion requests: write to hello@expresslearning.app.
Please include the plan link if your message is about a specific plan.
""",
}


@router.get("/health")
def health():
	return {"status": "ok"}


@router.get("/manifest.webmanifest")
def manifest():
	return JSONResponse(MANIFEST_JSON, media_type="application/manifest+json")


@router.get("/pages/{slug}", response_class=PlainTextResponse)
def get_page(slug: str):
	body = PAGES_MARKDOWN.get(slug)
	if body is None:
		raise HTTPException(status_code=404, detail="Page not found")
	return PlainTextResponse(body.strip() + "\n", media_type="text/markdown")
