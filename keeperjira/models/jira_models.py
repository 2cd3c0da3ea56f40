"""Pydantic models for the Jira REST calls made by the webhook pipeline."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JiraIssueRef(BaseModel):
    """Issue identifiers returned by create and search calls."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    key: str
    url: Optional[str] = Field(None, alias="self")


class JiraSearchResult(BaseModel):
    """Subset of ``GET /rest/api/3/search/jql``."""
    model_config = ConfigDict(extra="ignore")

    issues: List[JiraIssueRef] = []


class JiraDocument(BaseModel):
    """Atlassian Document Format body."""
    type: str = "doc"
    version: int = 1
    content: List[Dict[str, Any]]


class JiraIssueCreate(BaseModel):
    """Body of ``POST /rest/api/3/issue``."""
    model_config = ConfigDict(extra="ignore")

    fields: Dict[str, Any]


def create_document(paragraphs: List[str]) -> JiraDocument:
    """Create an ADF document with one paragraph per line of text."""
    return JiraDocument(
        content=[
            {
                "type": "paragraph",
                "content": [
                    {
                        "type": "text",
                        "text": text
                    }
                ]
            }
            for text in paragraphs
            if text
        ]
    )
