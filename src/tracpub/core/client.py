import threading
import xmlrpc.client
from typing import Any
from xml.etree import ElementTree

import requests

from ..config import Config
from ..validators import validate_content, validate_page_name

# Connect timeout is capped so an unreachable host fails fast.
CONNECT_TIMEOUT = 10.0


class TracClient:
    """Minimal XML-RPC client for the Trac wiki API.

    One ``requests.Session`` is kept per thread so the client can be shared
    by the batch executor's worker threads.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.rpc_url = f"{self.config.trac_url.rstrip('/')}/login/rpc"

    @property
    def session(self) -> requests.Session:
        return self._get_session()

    @property
    def timeout(self) -> tuple[float, float]:
        return (min(CONNECT_TIMEOUT, self.config.timeout), self.config.timeout)

    def page_url(self, page_name: str) -> str:
        return f"{self.config.trac_url.rstrip('/')}/wiki/{page_name}"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.auth = (self.config.username, self.config.password)
            session.verify = not self.config.insecure
            self._thread_local.session = session
        return self._thread_local.session

    def _rpc_request(self, service: str, method: str, *params):
        """
        Make an XML-RPC request to the Trac server.

        Raises:
            requests.RequestException: On transport errors, HTTP errors and
                timeouts.
            xmlrpc.client.Fault: If the server answers with a fault.
        """
        payload = xmlrpc.client.dumps(params, methodname=f"{service}.{method}")
        response = self._get_session().post(
            self.rpc_url,
            data=payload.encode("utf-8"),
            headers={"Content-Type": "text/xml"},
            timeout=self.timeout,
        )
        response.raise_for_status()

        tree = ElementTree.fromstring(response.content)
        fault = tree.find(".//fault")
        if fault is not None:
            code = fault.find('.//member[name="faultCode"]/value/int')
            message = fault.find('.//member[name="faultString"]/value/string')
            raise xmlrpc.client.Fault(
                int(code.text) if code is not None and code.text else 0,
                message.text
                if message is not None and message.text
                else "Unknown error",
            )

        value = tree.find(".//param/value")
        if value is None:
            return None
        return self._parse_xmlrpc_value(value)

    def _parse_xmlrpc_value(self, element):
        """
        Recursively parse an XML-RPC value element.
        """
        if len(element) == 0:
            # A bare <value>text</value> is a string.
            return element.text or ""
        data_type = element[0].tag
        data_value = element[0].text

        match data_type:
            case "array":
                data = element.find("./array/data")
                if data is None:
                    return []
                return [self._parse_xmlrpc_value(v) for v in data.findall("value")]
            case "struct":
                result = {}
                for member in element[0].findall("member"):
                    result[member.find("name").text] = self._parse_xmlrpc_value(
                        member.find("value")
                    )
                return result
            case "int" | "i4":
                return int(data_value)
            case "boolean":
                return data_value == "1"
            case "double":
                return float(data_value)
            case "string":
                return data_value or ""
            case _:
                return data_value

    def validate_connection(self) -> str:
        """
        Validate connection by calling system.getAPIVersion().
        Returns the API version string if successful.
        """
        version = self._rpc_request("system", "getAPIVersion")
        return str(version) if version is not None else ""

    def get_wiki_page_info(self, page_name: str) -> dict[str, Any]:
        """
        Get wiki page metadata.

        Returns:
            Dict with keys: name, author, version, lastModified
        """
        return self._rpc_request("wiki", "getPageInfo", page_name)

    def put_wiki_page(
        self,
        page_name: str,
        content: str,
        comment: str,
        version: int | None = None,
    ) -> dict[str, Any]:
        """
        Create or update a wiki page with optimistic locking.

        Args:
            page_name: Name of the wiki page to create/update
            content: Page content in TracWiki format
            comment: Comment describing the change
            version: Version the caller last saw; the server rejects the
                write if the page has moved on since.

        Returns:
            Dict with keys: name, version, author, lastModified, url

        Raises:
            ValueError: If page_name or content validation fails, or a
                version conflict is detected
            xmlrpc.client.Fault: If server returns error or permissions denied
        """
        is_valid, error_msg = validate_page_name(page_name)
        if not is_valid:
            raise ValueError(f"Invalid page name: {error_msg}")

        is_valid, error_msg = validate_content(content)
        if not is_valid:
            raise ValueError(f"Invalid content: {error_msg}")

        attrs: dict[str, Any] = {"comment": comment}
        if version is not None:
            attrs["version"] = version

        try:
            result = self._rpc_request("wiki", "putPage", page_name, content, attrs)
        except xmlrpc.client.Fault as err:
            fault_str = err.faultString.lower()
            if "not modified" in fault_str:
                # Identical content: the page is already what we want.
                result = True
            elif "version" in fault_str:
                raise ValueError(
                    "Version conflict - page was modified by another user"
                ) from None
            else:
                raise

        if result is not True:
            raise ValueError(f"Failed to update page '{page_name}'")

        info = self.get_wiki_page_info(page_name) or {}
        return {
            "name": page_name,
            "version": info.get("version"),
            "author": info.get("author"),
            "lastModified": info.get("lastModified"),
            "url": self.page_url(page_name),
        }
