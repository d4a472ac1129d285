import argparse
import asyncio
import sys
import threading
from datetime import date

from face_greeter.admin_service import AdminService
from face_greeter.config import CAMERA_INDEX, DB_PATH, ENROLLMENT_SAMPLES, RecognitionSettings
from face_greeter.database import GreeterDatabase
from face_greeter.exceptions import GreeterError
from face_greeter.greeting_cache import GreetingCache
from face_greeter.logger import setup_logger
from face_greeter.playback import PygameAudioPlayer
from face_greeter.synthesis import GoogleSpeechSynthesizer


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{raw}', expected YYYY-MM-DD") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live face recognition with personalized spoken greetings")

    subparsers = parser.add_subparsers(dest="command", required=True)

    enroll = subparsers.add_parser("enroll", help="Enroll a person from live camera samples or photos")
    enroll.add_argument("--name", required=True, help="Display name used in the greeting")
    enroll.add_argument("--dob", type=_parse_date, default=None, help="Date of birth (YYYY-MM-DD)")
    enroll.add_argument("--samples", type=int, default=ENROLLMENT_SAMPLES, help="Number of reference embeddings")
    enroll.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Webcam index")
    enroll.add_argument("--image", nargs="+", dest="images", default=None, help="Enroll from photo files instead of the camera")
    enroll.add_argument("--no-greeting", action="store_true", help="Skip synthesizing the greeting after enrollment")

    recognize = subparsers.add_parser("recognize", help="Run live recognition and greet known people")
    recognize.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Webcam index")
    recognize.add_argument("--distance-threshold", type=float, default=None, help="Override distance threshold")
    recognize.add_argument("--confidence-threshold", type=int, default=None, help="Override confidence percent")

    list_cmd = subparsers.add_parser("list-people", help="List enrolled people")
    list_cmd.add_argument("--limit", type=int, default=100, help="Max rows to print")

    delete = subparsers.add_parser("delete-person", help="Delete an enrolled person")
    delete.add_argument("--id", required=True, dest="identity_id", help="Person id")

    api_key = subparsers.add_parser("set-api-key", help="Store the speech synthesis API key")
    api_key.add_argument("--key", required=True, help="Google Cloud Text-to-Speech API key")

    thresholds = subparsers.add_parser("set-thresholds", help="Store recognition thresholds")
    thresholds.add_argument("--distance", type=float, required=True, help="Maximum Euclidean distance")
    thresholds.add_argument("--confidence", type=int, required=True, help="Minimum confidence percent (0-100)")

    preview = subparsers.add_parser("preview-greeting", help="Play (and cache) a person's greeting")
    preview.add_argument("--id", required=True, dest="identity_id", help="Person id")

    return parser


def _admin(db: GreeterDatabase) -> AdminService:
    cache = GreetingCache(db, GoogleSpeechSynthesizer())
    return AdminService(db, cache, PygameAudioPlayer())


def _recognize(db: GreeterDatabase, args: argparse.Namespace) -> int:
    from face_greeter.camera import CameraStream
    from face_greeter.face_engine import FaceEngine
    from face_greeter.session import RecognitionSession

    settings = RecognitionSettings.load(db)
    if args.distance_threshold is not None:
        settings.distance_threshold = args.distance_threshold
    if args.confidence_threshold is not None:
        settings.confidence_threshold_percent = args.confidence_threshold
    try:
        settings.__post_init__()
    except ValueError as exc:
        raise GreeterError(str(exc)) from exc

    session = RecognitionSession(
        store=db,
        detector=FaceEngine(),
        synthesizer=GoogleSpeechSynthesizer(),
        player=PygameAudioPlayer(),
        settings=settings,
    )
    session.start()

    stop = threading.Event()
    with CameraStream(args.camera) as cam:
        try:
            processed = asyncio.run(session.run(cam.iter_frames(stop)))
        except KeyboardInterrupt:
            stop.set()
            raise
    print(f"Recognition stopped after {processed} frames.")
    return 0


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logger = setup_logger("main")

    try:
        db = GreeterDatabase(DB_PATH)

        if args.command == "enroll":
            from face_greeter.enrollment_service import EnrollmentService
            from face_greeter.face_engine import FaceEngine

            service = EnrollmentService(db, detector=FaceEngine())
            if args.images:
                identity = service.enroll_from_images(args.name, args.images, date_of_birth=args.dob)
            else:
                identity = service.enroll_from_camera(
                    name=args.name,
                    date_of_birth=args.dob,
                    camera_index=args.camera,
                    target_samples=args.samples,
                )
            print(f"Enrolled {identity.name} as {identity.identity_id} with {len(identity.embeddings)} samples.")
            if not args.no_greeting:
                try:
                    _admin(db).prepare_greeting(identity.identity_id)
                    print("Greeting audio cached.")
                except GreeterError as exc:
                    logger.warning("Greeting not cached for %s: %s", identity.identity_id, exc)
                    print(f"Greeting not cached yet: {exc}")
            return 0

        if args.command == "recognize":
            return _recognize(db, args)

        if args.command == "list-people":
            people = _admin(db).list_people()
            if not people:
                print("No people enrolled.")
                return 0

            print(f"{'Person ID':<16} {'Name':<28} {'DOB':<12} {'Age':>4} {'Samples':>7} {'Greeting':>8}")
            print("-" * 81)
            for person in people[: args.limit]:
                dob = person.date_of_birth.isoformat() if person.date_of_birth else "-"
                cached = "yes" if person.has_cached_greeting else "no"
                age = person.age()
                age_text = "-" if age is None else str(age)
                print(f"{person.identity_id:<16} {person.name:<28} {dob:<12} {age_text:>4} {len(person.embeddings):>7} {cached:>8}")
            return 0

        if args.command == "delete-person":
            _admin(db).delete_person(args.identity_id)
            print(f"Deleted {args.identity_id}.")
            return 0

        if args.command == "set-api-key":
            _admin(db).set_api_key(args.key)
            print("API key saved.")
            return 0

        if args.command == "set-thresholds":
            _admin(db).save_thresholds(args.distance, args.confidence)
            print(f"Thresholds saved: distance < {args.distance}, confidence >= {args.confidence}%.")
            return 0

        if args.command == "preview-greeting":
            _admin(db).preview_greeting(args.identity_id)
            return 0

    except GreeterError as exc:
        logger.error("Application error: %s", exc)
        print(f"Error: {exc}")
        return 1
    except KeyboardInterrupt:
        print("\nStopped by user.")
        return 1
    except Exception:
        logger.exception("Unexpected failure")
        print("Unexpected failure. Check logs/greeter.log for details.")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
