"""
Document Scanner - Main Streamlit Application

Upload scans or photos of documents, review the auto-detected boundary,
drag the corners into place and save the perspective-corrected result.
"""

import asyncio
import logging
from typing import Optional

import streamlit as st
from streamlit_image_coordinates import streamlit_image_coordinates
from PIL import Image

from api_client import BackendClient
from database import DocumentStore
from docscan import (
    BoundaryEditor,
    BoundaryView,
    Credentials,
    DocScanError,
    ItemStatus,
    ObjectUrlRegistry,
    Orchestrator,
    UploadedFile,
)
from docscan.validation import validate_files
from image_processing import from_data_url, load_pil, rasterize_upload
from local_backend import LocalBackend
from settings import configure_logging, load_settings

logger = logging.getLogger(__name__)


# Page configuration
st.set_page_config(
    page_title="Document Scanner",
    page_icon="📄",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .status-badge {
        padding: 2px 8px;
        border-radius: 12px;
        font-size: 12px;
        display: inline-block;
    }
    .stTabs [data-baseweb="tab-list"] {
        gap: 24px;
    }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    if 'settings' not in st.session_state:
        settings = load_settings(st.secrets)
        configure_logging(settings.log_level)
        st.session_state.settings = settings
    settings = st.session_state.settings

    if 'loop' not in st.session_state:
        st.session_state.loop = asyncio.new_event_loop()
    if 'resources' not in st.session_state:
        st.session_state.resources = ObjectUrlRegistry()
    if 'backend' not in st.session_state:
        if settings.use_local_backend:
            st.session_state.backend = LocalBackend()
        else:
            st.session_state.backend = BackendClient(settings.backend_url, settings.backend_timeout)
    if 'store' not in st.session_state:
        st.session_state.store = None
    if 'orchestrator' not in st.session_state:
        backend = st.session_state.backend
        st.session_state.orchestrator = Orchestrator(
            detector=backend,
            finalizer=backend,
            store=st.session_state.store,
            lister=st.session_state.store,
            resources=st.session_state.resources,
            enhance=settings.enhance,
            auto_trim=settings.auto_trim,
        )
    if 'editor' not in st.session_state:
        orchestrator = st.session_state.orchestrator
        st.session_state.editor = BoundaryEditor(on_commit=orchestrator.update_boundary)
        st.session_state.view = BoundaryView(st.session_state.editor)
    if 'images' not in st.session_state:
        st.session_state.images = {}  # item id -> decoded PIL image
    if 'last_click' not in st.session_state:
        st.session_state.last_click = {}  # item id -> last handled canvas click
    if 'selected_id' not in st.session_state:
        st.session_state.selected_id = None
    if 'owner_id' not in st.session_state:
        st.session_state.owner_id = ''
    if 'token' not in st.session_state:
        st.session_state.token = ''
    if 'gallery' not in st.session_state:
        st.session_state.gallery = {'documents': [], 'cursor': None, 'has_more': False, 'loaded': False}


def run(coro):
    """Run a coroutine on the session's event loop."""
    return st.session_state.loop.run_until_complete(coro)


def current_credentials() -> Optional[Credentials]:
    owner_id = st.session_state.owner_id.strip()
    if not owner_id:
        return None
    return Credentials(owner_id=owner_id, token=st.session_state.token.strip())


def connect_store():
    """Sidebar: session identity and the AWS document store."""
    settings = st.session_state.settings
    orchestrator = st.session_state.orchestrator

    with st.sidebar.expander("👤 Session", expanded=not st.session_state.owner_id):
        st.session_state.owner_id = st.text_input("User ID", value=st.session_state.owner_id)
        if not settings.use_local_backend:
            st.session_state.token = st.text_input(
                "API token", value=st.session_state.token, type="password"
            )

    with st.sidebar.expander("⚙️ Storage", expanded=st.session_state.store is None):
        if st.session_state.store is not None:
            st.success("Connected to AWS (DynamoDB + S3)")
            st.caption(f"Table: {st.session_state.store.table_name}")
            st.caption(f"Bucket: {st.session_state.store.bucket_name}")
            if st.button("Disconnect"):
                st.session_state.store = None
                orchestrator.store = None
                orchestrator.lister = None
                st.rerun()
            return

        if not settings.has_aws_credentials:
            st.info("Set AWS credentials in secrets or the environment to save documents.")
            return

        if st.button("Connect to AWS"):
            try:
                store = DocumentStore(
                    table_name=settings.table_name,
                    bucket_name=settings.bucket_name,
                    region_name=settings.region_name,
                    aws_access_key_id=settings.aws_access_key_id,
                    aws_secret_access_key=settings.aws_secret_access_key,
                )
                store.create_resources_if_not_exists()
            except Exception as e:
                logger.exception("AWS connection failed")
                st.error(f"Connection failed: {str(e)}")
                return
            st.session_state.store = store
            orchestrator.store = store
            orchestrator.lister = store
            st.rerun()


def item_image(item) -> Optional[Image.Image]:
    """Decoded source image for an item, cached so redraws can detect changes."""
    images = st.session_state.images
    if item.id not in images:
        try:
            images[item.id] = load_pil(st.session_state.resources.resolve(item.local_url))
        except (KeyError, ValueError):
            images[item.id] = None
    return images[item.id]


def result_image(url: str):
    """Something ``st.image`` can show for a result URL."""
    backend = st.session_state.backend
    if isinstance(backend, LocalBackend) and url.startswith(LocalBackend.URL_PREFIX):
        return from_data_url(backend.data_url(url))
    return url


def upload_section():
    """File selection and detection fan-out."""
    settings = st.session_state.settings
    orchestrator = st.session_state.orchestrator

    st.subheader("📤 Upload Documents")
    uploaded_files = st.file_uploader(
        "Choose scans or photos of documents",
        type=['png', 'jpg', 'jpeg', 'pdf'],
        accept_multiple_files=True,
        key="document_uploader",
        disabled=orchestrator.busy,
    )

    if uploaded_files and st.button("🔍 Detect Documents", type="primary"):
        files = [UploadedFile.from_upload(f) for f in uploaded_files]
        accepted, messages = validate_files(files, settings.max_file_size)
        for message in messages:
            st.error(message)

        pages = []
        for file in accepted:
            try:
                pages.append(rasterize_upload(file))
            except ValueError as e:
                st.error(f"{file.name}: {e}")
        accepted = pages
        if not accepted:
            return

        async def add_and_detect():
            ids = orchestrator.add_files(accepted, current_credentials())
            await orchestrator.wait_idle()
            return ids

        try:
            with st.spinner("Detecting documents..."):
                ids = run(add_and_detect())
        except DocScanError as e:
            st.error(str(e))
            return
        if ids and st.session_state.selected_id is None:
            st.session_state.selected_id = ids[0]
        st.rerun()


def select_item():
    """Tab-like selector over the collection; returns the selected item."""
    items = st.session_state.orchestrator.items
    if not items:
        st.session_state.selected_id = None
        return None

    ids = [item.id for item in items]
    if st.session_state.selected_id not in ids:
        st.session_state.selected_id = ids[-1]

    labels = {item.id: f"{item.filename} · {item.status.label}" for item in items}
    st.session_state.selected_id = st.radio(
        "Documents",
        ids,
        index=ids.index(st.session_state.selected_id),
        format_func=labels.get,
        horizontal=True,
        label_visibility="collapsed",
    )
    return st.session_state.orchestrator.get(st.session_state.selected_id)


def boundary_canvas(item):
    """Clickable editor image: click a handle to pick it up, click again to drop it there."""
    editor = st.session_state.editor
    surface = st.session_state.view.boundary_surface.to_image()
    click = streamlit_image_coordinates(surface, key=f"canvas_{item.id}")
    if click is None or not item.editable:
        return

    stamp = (click["x"], click["y"], click.get("unix_time"))
    if st.session_state.last_click.get(item.id) == stamp:
        return
    st.session_state.last_click[item.id] = stamp

    # the component reports positions in its rendered size
    width = click.get("width") or surface.width
    height = click.get("height") or surface.height
    point = (click["x"] * surface.width / width, click["y"] * surface.height / height)
    if editor.active_handle is None and editor.hit_test(point) is None:
        st.toast("Click a corner handle to move it")
        return
    editor.pointer_click(point)
    st.rerun()


def corner_controls(item, image):
    """Numeric handle placement in display coordinates."""
    editor = st.session_state.editor
    transform = editor.transform
    if transform is None:
        return

    with st.expander("Fine-tune corner positions", expanded=False):
        cols = st.columns(4)
        for index, (col, corner) in enumerate(zip(cols, editor.corners)):
            display = transform.to_display(corner)
            with col:
                st.caption(f"Handle {index + 1}")
                x = st.number_input(
                    "X", value=float(round(display.x, 1)),
                    min_value=0.0, max_value=float(transform.display_width),
                    key=f"handle_{item.id}_{index}_x",
                )
                y = st.number_input(
                    "Y", value=float(round(display.y, 1)),
                    min_value=0.0, max_value=float(transform.display_height),
                    key=f"handle_{item.id}_{index}_y",
                )
            if abs(x - display.x) > 0.5 or abs(y - display.y) > 0.5:
                editor.set_corner(index, transform.to_image((x, y)))
                st.rerun()


def preview_panel():
    """Editor canvas, crop preview and per-item actions for the selected item."""
    orchestrator = st.session_state.orchestrator
    editor = st.session_state.editor
    view = st.session_state.view
    settings = st.session_state.settings

    item = select_item()
    if item is None:
        editor.detach()
        return

    header, remove_col = st.columns([6, 1])
    with header:
        st.markdown(f"**{item.filename}** · {item.status.label}")
    with remove_col:
        if st.button("✖ Remove", key=f"remove_{item.id}", disabled=item.status is ItemStatus.PROCESSING):
            orchestrator.remove_one(item.id)
            st.session_state.images.pop(item.id, None)
            st.rerun()

    if item.error:
        st.error(item.error)

    if item.status in (ItemStatus.PENDING, ItemStatus.DETECTING):
        st.info("Detecting document...")
        return
    if item.status is ItemStatus.PROCESSING:
        st.info("Processing document...")
        return
    if item.status is ItemStatus.ERROR and item.detection is None:
        return

    image = item_image(item)
    if item.status is ItemStatus.COMPLETED:
        col1, col2 = st.columns(2)
        with col1:
            st.markdown("**Original Image**")
            if image is not None:
                st.image(image, use_container_width=True)
        with col2:
            st.markdown("**Cropped Result**")
            if item.cropped_url:
                st.image(result_image(item.cropped_url), use_container_width=True)
        st.success("Processing complete")
        return

    if image is None:
        st.warning("This file cannot be previewed; confirm to process it with the detected corners.")
    else:
        view.redraw(item, image, settings.editor_box)
        col1, col2 = st.columns(2)
        with col1:
            st.markdown("**Original Image** (click a corner, then click where it belongs)")
            boundary_canvas(item)
        with col2:
            st.markdown("**Cropped Preview**")
            if view.preview_drawn:
                st.image(view.preview_surface.to_image())
            else:
                st.caption("Waiting for a valid boundary...")
        if item.editable:
            corner_controls(item, image)

    detection = item.detection
    if detection is not None and item.editable:
        info_col, actions_col = st.columns([2, 1])
        with info_col:
            st.caption(
                f"Confidence: **{detection.confidence * 100:.1f}%** | Method: **{detection.method}**"
            )
            if detection.warning:
                st.warning(detection.warning)
            for label in editor.corner_labels():
                st.caption(label)
        with actions_col:
            if st.button("🔄 Reset Corners", key=f"reset_{item.id}"):
                editor.reset()
                st.rerun()
            if st.button("✅ Confirm & Process", type="primary", key=f"confirm_{item.id}"):
                try:
                    with st.spinner("Processing document..."):
                        run(orchestrator.confirm_one(item.id, editor.corners, current_credentials()))
                except DocScanError as e:
                    st.error(str(e))
                    return
                st.rerun()


def batch_actions():
    """Confirm all, save all and clear all."""
    orchestrator = st.session_state.orchestrator
    counts = orchestrator.counts()
    detected = counts[ItemStatus.DETECTED]
    completed = counts[ItemStatus.COMPLETED]

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button(f"✅ Confirm All ({detected})", disabled=detected == 0):
            try:
                with st.spinner("Processing documents..."):
                    run(orchestrator.confirm_all(current_credentials()))
            except DocScanError as e:
                st.error(str(e))
            else:
                st.rerun()
    with col2:
        save_disabled = completed == 0 or orchestrator.store is None or orchestrator.saving
        if st.button(f"💾 Save All ({completed})", type="primary", disabled=save_disabled):
            try:
                with st.spinner("Saving documents..."):
                    saved = run(orchestrator.save_all(current_credentials()))
            except DocScanError as e:
                st.error(str(e) or "Failed to save documents")
            else:
                st.success(f"{saved} document(s) saved successfully!")
                st.session_state.gallery['loaded'] = False
    with col3:
        if st.button("🗑️ Clear All", disabled=orchestrator.busy):
            orchestrator.clear_all()
            st.session_state.images.clear()
            st.session_state.selected_id = None
            st.rerun()


def gallery_section():
    """Previously saved documents, paginated by cursor."""
    orchestrator = st.session_state.orchestrator
    store = st.session_state.store
    gallery = st.session_state.gallery

    if store is None:
        st.info("Connect to AWS in the sidebar to see saved documents.")
        return
    credentials = current_credentials()
    if credentials is None:
        st.info("Enter your user ID in the sidebar.")
        return

    def load(cursor=None, append=False):
        try:
            page = orchestrator.list_saved(credentials, limit=20, cursor=cursor)
        except DocScanError as e:
            st.error(str(e))
            return
        gallery['documents'] = (gallery['documents'] if append else []) + page.documents
        gallery['cursor'] = page.next_cursor
        gallery['has_more'] = page.has_more
        gallery['loaded'] = True

    if st.button("🔄 Refresh") or not gallery['loaded']:
        load()

    documents = gallery['documents']
    if not documents:
        st.info("No documents saved yet.")
        return

    cols_per_row = 4
    for i in range(0, len(documents), cols_per_row):
        cols = st.columns(cols_per_row)
        for col, document in zip(cols, documents[i:i + cols_per_row]):
            with col:
                url = document.processed_urls[0] if document.processed_urls else document.original_url
                presigned = store.presigned_url(url)
                if presigned:
                    st.image(presigned, use_container_width=True)
                st.caption(document.filename)
                st.caption(document.created_at[:19].replace('T', ' '))
                if st.button("🗑️ Delete", key=f"delete_{document.document_id}"):
                    if store.delete_document(credentials.owner_id, document):
                        gallery['documents'] = [
                            d for d in gallery['documents'] if d.document_id != document.document_id
                        ]
                        st.rerun()
                    else:
                        st.error("Failed to delete document")

    if gallery['has_more'] and st.button("Load more"):
        load(gallery['cursor'], append=True)
        st.rerun()


def main():
    init_session_state()
    connect_store()

    st.title("📄 Document Scanner")
    upload_tab, gallery_tab = st.tabs(["Upload & Process", "Document Gallery"])

    with upload_tab:
        upload_section()
        if st.session_state.orchestrator.items:
            st.divider()
            preview_panel()
            st.divider()
            batch_actions()

    with gallery_tab:
        gallery_section()


main()
