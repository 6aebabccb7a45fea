"""Small demo catalog for local play (``flask seed-catalog``)."""

from songquiz import db
from songquiz.models import COMPLETED, Anime, Franchise, Song, User

DEMO_CATALOG = [
    # franchise, genres, [(anime, alt names, year, popularity, [(title, artist, type, difficulty, video key)])]
    ('Naruto', ['Action', 'Adventure'], [
        ('Naruto', ['NARUTO'], 2002, 92, [
            ('R★O★C★K★S', 'Hound Dog', 'OP1', 'easy', 'naruto-op1'),
            ('Wind', 'Akeboshi', 'ED1', 'medium', 'naruto-ed1'),
        ]),
        ('Naruto Shippuden', ['Naruto: Shippuuden'], 2007, 90, [
            ('Blue Bird', 'Ikimono-gakari', 'OP3', 'easy', 'shippuden-op3'),
        ]),
    ]),
    ('Fullmetal Alchemist', ['Action', 'Fantasy', 'Drama'], [
        ('Fullmetal Alchemist: Brotherhood', ['Hagane no Renkinjutsushi', 'FMA Brotherhood'], 2009, 95, [
            ('again', 'YUI', 'OP1', 'easy', 'fmab-op1'),
            ('Period', 'CHEMISTRY', 'OP4', 'medium', 'fmab-op4'),
        ]),
    ]),
    ('Neon Genesis Evangelion', ['Mecha', 'Psychological', 'Sci-Fi'], [
        ('Neon Genesis Evangelion', ['Shinseiki Evangelion'], 1995, 88, [
            ("A Cruel Angel's Thesis", 'Yoko Takahashi', 'OP1', 'easy', 'eva-op1'),
            ('Fly Me to the Moon', 'Claire Littley', 'ED1', 'hard', 'eva-ed1'),
        ]),
    ]),
    ('K-On!', ['Slice of Life', 'Comedy'], [
        ('K-On!', ['Keion'], 2009, 78, [
            ('Cagayake! GIRLS', 'Houkago Tea Time', 'OP1', 'medium', 'kon-op1'),
            ("Don't say \"lazy\"", 'Houkago Tea Time', 'ED1', 'medium', 'kon-ed1'),
        ]),
    ]),
    ('Cowboy Bebop', ['Sci-Fi', 'Space'], [
        ('Cowboy Bebop', [], 1998, 89, [
            ('Tank!', 'The Seatbelts', 'OP1', 'easy', 'bebop-op1'),
            ('The Real Folk Blues', 'Mai Yamane', 'ED1', 'hard', 'bebop-ed1'),
        ]),
    ]),
]

DEMO_USERS = ['testuser1', 'testuser2', 'testuser3']


def seed_demo_catalog():
    """Insert the demo rows into an empty database and return what was created."""
    counts = {'anime': 0, 'songs': 0, 'users': 0}
    anime_ids = []
    for franchise_name, genres, animes in DEMO_CATALOG:
        franchise = Franchise(name=franchise_name)
        franchise.genres = genres
        db.session.add(franchise)
        for name, alt_names, year, popularity, songs in animes:
            anime = Anime(name=name, season_year=year, popularity=popularity, franchise=franchise)
            anime.alt_names = alt_names
            db.session.add(anime)
            counts['anime'] += 1
            for title, artist, song_type, difficulty, video_key in songs:
                db.session.add(Song(
                    title=title,
                    artist=artist,
                    type=song_type,
                    difficulty=difficulty,
                    video_key=video_key,
                    download_status=COMPLETED,
                    anime=anime,
                ))
                counts['songs'] += 1
            db.session.flush()
            anime_ids.append(anime.id)

    for i, username in enumerate(DEMO_USERS):
        user = User(username=username)
        # First demo account gets a watch list covering half of the catalog
        if i == 0:
            user.watched_ids = anime_ids[::2]
        db.session.add(user)
        counts['users'] += 1

    db.session.commit()
    return counts
