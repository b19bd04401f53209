# User-facing notification strings.
DEFAULT_ROOM_NAME = "دردشة"

PIN_TITLE = "📌 رسالة مثبتة في {room}"
PIN_BODY = "من {sender}: {preview}"

MANUAL_TITLE = "📢 إشعار من {sender}"

LECTURE_TITLE = "📢 تحديث: {title}"
LECTURE_DATE_CHANGED = "📅 التاريخ تغير من {old} إلى {new}"
LECTURE_TIME_CHANGED = "⏰ وقت المحاضرة تغير وأصبح: {start}"
LECTURE_DURATION = "⏱️ مدة المحاضرة: {duration}"
LECTURE_LOCATION_CHANGED = "📍 مكان القاعة تغير من {old} إلى {new}"
LOCATION_UNSET = "غير محدد"

AM = "ص"
PM = "م"

ONE_HOUR = "ساعة واحدة"
HOURS = "{hours} ساعات"
ONE_HOUR_AND_MINUTES = "ساعة و {minutes} دقيقة"
HOURS_AND_MINUTES = "{hours} ساعات و {minutes} دقيقة"
MINUTES = "{minutes} دقيقة"

STORY_TITLE = "✨ قصة جديدة"
STORY_TITLES = {
    "urgent": "⚠️ قصة عاجلة",
    "announcement": "📢 قصة: إعلان جديد",
    "event": "📅 قصة: حدث جديد",
}
STORY_FALLBACK_BODY = "قصة جديدة من الممثل"
