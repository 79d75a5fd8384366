"""
Small KJV excerpt used across the test suite.

Sparse on purpose: a handful of books, some complete chapters, some single
verses, so both whole-chapter and out-of-range behaviour can be exercised.
"""
from typing import Any, Dict

from corpus.index import CorpusIndex
from corpus.loader import corpus_from_document

JOHN_3 = {
    1: "There was a man of the Pharisees, named Nicodemus, a ruler of the Jews:",
    2: "The same came to Jesus by night, and said unto him, Rabbi, we know that thou art a teacher come from God: for no man can do these miracles that thou doest, except God be with him.",
    3: "Jesus answered and said unto him, Verily, verily, I say unto thee, Except a man be born again, he cannot see the kingdom of God.",
    4: "Nicodemus saith unto him, How can a man be born when he is old? can he enter the second time into his mother's womb, and be born?",
    5: "Jesus answered, Verily, verily, I say unto thee, Except a man be born of water and of the Spirit, he cannot enter into the kingdom of God.",
    6: "That which is born of the flesh is flesh; and that which is born of the Spirit is spirit.",
    7: "Marvel not that I said unto thee, Ye must be born again.",
    8: "The wind bloweth where it listeth, and thou hearest the sound thereof, but canst not tell whence it cometh, and whither it goeth: so is every one that is born of the Spirit.",
    9: "Nicodemus answered and said unto him, How can these things be?",
    10: "Jesus answered and said unto him, Art thou a master of Israel, and knowest not these things?",
    11: "Verily, verily, I say unto thee, We speak that we do know, and testify that we have seen; and ye receive not our witness.",
    12: "If I have told you earthly things, and ye believe not, how shall ye believe, if I tell you of heavenly things?",
    13: "And no man hath ascended up to heaven, but he that came down from heaven, even the Son of man which is in heaven.",
    14: "And as Moses lifted up the serpent in the wilderness, even so must the Son of man be lifted up:",
    15: "That whosoever believeth in him should not perish, but have eternal life.",
    16: "For God so loved the world, that he gave his only begotten Son, that whosoever believeth in him should not perish, but have everlasting life.",
    17: "For God sent not his Son into the world to condemn the world; but that the world through him might be saved.",
    18: "He that believeth on him is not condemned: but he that believeth not is condemned already, because he hath not believed in the name of the only begotten Son of God.",
    19: "And this is the condemnation, that light is come into the world, and men loved darkness rather than light, because their deeds were evil.",
    20: "For every one that doeth evil hateth the light, neither cometh to the light, lest his deeds should be reproved.",
    21: "But he that doeth truth cometh to the light, that his deeds may be made manifest, that they are wrought in God.",
}

JOHN_4 = {
    1: "When therefore the Lord knew how the Pharisees had heard that Jesus made and baptized more disciples than John,",
    2: "(Though Jesus himself baptized not, but his disciples,)",
    3: "He left Judaea, and departed again into Galilee.",
    4: "And he must needs go through Samaria.",
    5: "Then cometh he to a city of Samaria, which is called Sychar, near to the parcel of ground that Jacob gave to his son Joseph.",
}

PSALM_23 = {
    1: "The LORD is my shepherd; I shall not want.",
    2: "He maketh me to lie down in green pastures: he leadeth me beside the still waters.",
    3: "He restoreth my soul: he leadeth me in the paths of righteousness for his name's sake.",
    4: "Yea, though I walk through the valley of the shadow of death, I will fear no evil: for thou art with me; thy rod and thy staff they comfort me.",
    5: "Thou preparest a table before me in the presence of mine enemies: thou anointest my head with oil; my cup runneth over.",
    6: "Surely goodness and mercy shall follow me all the days of my life: and I will dwell in the house of the LORD for ever.",
}

PSALM_24 = {
    1: "The earth is the LORD'S, and the fulness thereof; the world, and they that dwell therein.",
    2: "For he hath founded it upon the seas, and established it upon the floods.",
}

GENESIS_1 = {
    1: "In the beginning God created the heaven and the earth.",
    2: "And the earth was without form, and void; and darkness was upon the face of the deep. And the Spirit of God moved upon the face of the waters.",
    3: "And God said, Let there be light: and there was light.",
    4: "And God saw the light, that it was good: and God divided the light from the darkness.",
    5: "And God called the light Day, and the darkness he called Night. And the evening and the morning were the first day.",
}

HEBREWS_11 = {
    1: "Now faith is the substance of things hoped for, the evidence of things not seen.",
    2: "For by it the elders obtained a good report.",
    3: "Through faith we understand that the worlds were framed by the word of God, so that things which are seen were not made of things which do appear.",
}

ACTS_1 = {
    1: "The former treatise have I made, O Theophilus, of all that Jesus began both to do and teach,",
    2: "Until the day in which he was taken up, after that he through the Holy Ghost had given commandments unto the apostles whom he had chosen:",
    3: "To whom also he shewed himself alive after his passion by many infallible proofs, being seen of them forty days, and speaking of the things pertaining to the kingdom of God:",
}

FIRST_JOHN_4 = {
    7: "Beloved, let us love one another: for love is of God; and every one that loveth is born of God, and knoweth God.",
    8: "He that loveth not knoweth not God; for God is love.",
}

JUDE_1 = {
    1: "Jude, the servant of Jesus Christ, and brother of James, to them that are sanctified by God the Father, and preserved in Jesus Christ, and called:",
    2: "Mercy unto you, and peace, and love, be multiplied.",
    3: "Beloved, when I gave all diligence to write unto you of the common salvation, it was needful for me to write unto you, and exhort you that ye should earnestly contend for the faith which was once delivered unto the saints.",
}

PHILIPPIANS_4 = {
    13: "I can do all things through Christ which strengtheneth me.",
}

PHILEMON_1 = {
    1: "Paul, a prisoner of Jesus Christ, and Timothy our brother, unto Philemon our dearly beloved, and fellowlabourer,",
    2: "And to our beloved Apphia, and Archippus our fellowsoldier, and to the church in thy house:",
    3: "Grace to you, and peace, from God our Father and the Lord Jesus Christ.",
}

ROMANS_8 = {
    28: "And we know that all things work together for good to them that love God, to them who are the called according to his purpose.",
}


def _chapters(**chapters: Dict[int, str]) -> Dict[str, Dict[str, str]]:
    return {
        number.lstrip("c"): {str(verse): text for verse, text in verses.items()}
        for number, verses in chapters.items()
    }


def sample_document() -> Dict[str, Any]:
    """The excerpt in corpus file form."""
    return {
        "translation": "KJV",
        "books": [
            {"id": "GEN", "chapters": _chapters(c1=GENESIS_1)},
            {"id": "PSA", "chapters": _chapters(c23=PSALM_23, c24=PSALM_24)},
            {"id": "JHN", "chapters": _chapters(c3=JOHN_3, c4=JOHN_4)},
            {"id": "ACT", "chapters": _chapters(c1=ACTS_1)},
            {"id": "ROM", "chapters": _chapters(c8=ROMANS_8)},
            {"id": "PHP", "chapters": _chapters(c4=PHILIPPIANS_4)},
            {"id": "PHM", "chapters": _chapters(c1=PHILEMON_1)},
            {"id": "HEB", "chapters": _chapters(c11=HEBREWS_11)},
            {"id": "1JN", "chapters": _chapters(c4=FIRST_JOHN_4)},
            {"id": "JUD", "aliases": ["Judas"], "chapters": _chapters(c1=JUDE_1)},
        ],
    }


def build_sample_corpus() -> CorpusIndex:
    return corpus_from_document(sample_document())
